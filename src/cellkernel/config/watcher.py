"""Polling watcher that reloads the config cascade when a file changes.

Polls the modification times of every config file in the cascade and
reloads the configuration when one is created, modified or deleted.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from cellkernel.config.loader import reload_config
from cellkernel.config.paths import get_config_paths
from cellkernel.logging import get_logger

if TYPE_CHECKING:
    from cellkernel.config.schema import Config

_log = get_logger("config.watcher")

DEFAULT_POLL_INTERVAL = 2.0


class ConfigWatcher:
    """Watches config files and reloads when any of them changes."""

    def __init__(
        self,
        project_root: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_change: Callable[[Config], None] | None = None,
    ) -> None:
        """Set up a watcher; nothing is polled until ``start``.

        Args:
            project_root: Optional project directory whose config is watched.
            poll_interval: Seconds between checks.
            on_change: Called with the reloaded config after each change.
        """
        self._project_root = project_root
        self._poll_interval = poll_interval
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None
        self._mtimes: dict[Path, float] = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _snapshot(self) -> dict[Path, float]:
        mtimes: dict[Path, float] = {}
        for path in get_config_paths(self._project_root):
            with contextlib.suppress(OSError):
                mtimes[path] = path.stat().st_mtime
        return mtimes

    def detect_changes(self) -> list[Path]:
        """Paths created, modified or deleted since the previous check."""
        current = self._snapshot()
        changed = [
            path for path, mtime in self._mtimes.items() if current.get(path) != mtime
        ]
        changed.extend(path for path in current if path not in self._mtimes)
        self._mtimes = current
        return changed

    def check(self) -> Config | None:
        """Check once; reload and return the new config if anything changed."""
        changed = self.detect_changes()
        if not changed:
            return None
        _log.info("Reloading config, changed: %s", ", ".join(map(str, changed)))
        try:
            config = reload_config(project_root=self._project_root)
        except Exception as e:
            _log.error("Reload after config change failed: %s", e)
            return None
        if self._on_change is not None:
            self._on_change(config)
        return config

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.check()

    def start(self) -> None:
        """Start polling. Must be called from within a running event loop."""
        if self.running:
            return
        self._mtimes = self._snapshot()
        self._task = asyncio.create_task(self._poll_loop())
        _log.debug("Watching %d config paths every %.1fs", len(self._mtimes), self._poll_interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        _log.debug("Stopped watching config")

    async def __aenter__(self) -> ConfigWatcher:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        self.stop()
