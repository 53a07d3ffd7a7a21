"""Session workspace directory.

One durable directory per session roots every transient artifact: temporary
sources, compiled binaries, saved figures and the default SQL database.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from cellkernel.config.paths import get_default_workspace_root
from cellkernel.errors import WorkspaceError
from cellkernel.logging import get_logger

log = get_logger("workspace")


class Workspace:
    """Owns the session working directory.

    The directory is created lazily on first use and left in place when the
    session ends; only per-run artifacts are removed.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        """Initialize the workspace.

        Args:
            root: Directory to use. Defaults to the per-user data directory.
        """
        self._root = Path(root).expanduser() if root else get_default_workspace_root()
        self._ready = False

    @property
    def root(self) -> Path:
        """Workspace directory (not guaranteed to exist until ensure())."""
        return self._root

    def ensure(self) -> Path:
        """Create the workspace directory if needed and return it.

        Raises:
            WorkspaceError: If the directory cannot be created.
        """
        if self._ready and self._root.is_dir():
            return self._root
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Cannot create workspace {self._root}: {e}") from e
        if not self._root.is_dir():
            raise WorkspaceError(f"Workspace path is not a directory: {self._root}")
        if not self._ready:
            log.debug("Workspace ready at %s", self._root)
        self._ready = True
        return self._root

    async def ensure_async(self) -> Path:
        """ensure() run off the event loop thread."""
        return await asyncio.to_thread(self.ensure)

    def resolve(self, name: str) -> Path | None:
        """Normalized path for a name under the workspace, or None outside it."""
        return resolve_within(self._root, name)

    def __repr__(self) -> str:
        return f"Workspace({str(self._root)!r})"


def resolve_within(root: Path, name: str) -> Path | None:
    """Resolve a program-supplied name against a workspace root.

    Absolute names and ``..`` segments are accepted only while the
    normalized result stays inside the root; anything else yields None.
    """
    base = root.resolve()
    path = (base / name).resolve()
    if not path.is_relative_to(base):
        return None
    return path
