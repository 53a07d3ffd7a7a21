"""Loading, caching and reloading of the merged configuration.

Layers (see ``paths``) are read as YAML, merged lowest priority first,
topped with environment overrides (CK_LOG, CK_WORKSPACE) and converted into
the typed sections of ``Config``. Malformed files and values are logged and
ignored so a bad edit never stops cells from running.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from cellkernel.config.merge import merge_configs
from cellkernel.config.paths import get_config_paths
from cellkernel.config.schema import (
    Config,
    ExecutionConfig,
    LoggingConfig,
    ToolchainConfig,
    WorkspaceConfig,
)
from cellkernel.logging import get_logger

_log = get_logger("config")

_SECTIONS = ("execution", "workspace", "toolchains", "logging")

_cached_config: Config | None = None
_reload_callbacks: list[Callable[[Config], None]] = []


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Top-level mapping of a YAML file; empty when missing or unusable."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        _log.warning("Cannot read config %s: %s", path, e)
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    if data is not None and not isinstance(data, dict):
        _log.warning("Ignoring %s: top level is not a mapping", path)
        return {}
    return data or {}


def env_overrides() -> dict[str, Any]:
    """Config layer built from CK_LOG (log file) and CK_WORKSPACE (root)."""
    layer: dict[str, Any] = {}
    if log_file := os.environ.get("CK_LOG"):
        layer["logging"] = {"file": log_file}
    if workspace_root := os.environ.get("CK_WORKSPACE"):
        layer["workspace"] = {"root": workspace_root}
    return layer


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        _log.warning("Ignoring config section %r: expected a mapping", name)
        return {}
    return value


def _number(section: dict[str, Any], key: str, default: Any, kind: type = float) -> Any:
    value = section.get(key)
    if value is None:
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        _log.warning("Ignoring non-numeric %s: %r", key, value)
        return default


def _execution(data: dict[str, Any]) -> ExecutionConfig:
    section = _section(data, "execution")
    defaults = ExecutionConfig()
    timeout = section.get("timeout", defaults.timeout)
    # 0, null and "none" all disable the per-phase timeout
    if timeout in (None, 0, "none"):
        timeout = None
    else:
        timeout = _number(section, "timeout", defaults.timeout)
    return ExecutionConfig(
        timeout=timeout,
        output_limit=_number(section, "output_limit", defaults.output_limit, int),
        debounce_delay=_number(section, "debounce_delay", defaults.debounce_delay),
        flush_interval=_number(section, "flush_interval", defaults.flush_interval),
        restart_delay=_number(section, "restart_delay", defaults.restart_delay),
        kill_grace=_number(section, "kill_grace", defaults.kill_grace),
        auto_run=bool(section.get("auto_run", defaults.auto_run)),
    )


def _toolchains(data: dict[str, Any]) -> ToolchainConfig:
    section = _section(data, "toolchains")
    paths = _section(section, "paths")
    return ToolchainConfig(
        paths={
            str(language).lower(): os.path.expanduser(str(path))
            for language, path in paths.items()
            if path
        },
        primary_language=str(section.get("primary_language") or "python"),
    )


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged config dict into typed sections.

    Unknown top-level keys are kept in ``Config.extra``.
    """
    log_section = _section(data, "logging")
    return Config(
        execution=_execution(data),
        workspace=WorkspaceConfig(root=_section(data, "workspace").get("root")),
        toolchains=_toolchains(data),
        logging=LoggingConfig(
            level=log_section.get("level"),
            verbose=_number(log_section, "verbose", None, int),
            file=log_section.get("file"),
        ),
        extra={k: v for k, v in data.items() if k not in _SECTIONS},
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from every layer.

    Priority, highest first: environment, project
    (``<project_root>/.cellkernel/config.yaml``), user, system. Only the
    global config (no project_root) is cached.

    Args:
        project_root: Project directory whose config layer applies.
        reload: Re-read files even when a cached config exists.
    """
    global _cached_config

    if project_root is None and _cached_config is not None and not reload:
        return _cached_config

    layers = []
    for path in get_config_paths(project_root):
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded config layer %s", path)
            layers.append(layer)
    layers.append(env_overrides())

    config = dict_to_config(merge_configs(*layers))
    if project_root is None:
        _cached_config = config
    return config


def get_config() -> Config:
    """The cached global config, loaded on first use."""
    return _cached_config if _cached_config is not None else load_config()


def reset_config() -> None:
    """Forget the cached config; reload callbacks stay registered."""
    global _cached_config
    _cached_config = None


def reload_config(project_root: str | None = None) -> Config:
    """Re-read every layer and hand the result to reload callbacks.

    A failing callback is logged and does not stop the others.
    """
    config = load_config(project_root=project_root, reload=True)
    for callback in list(_reload_callbacks):
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback failed: %s", e)
    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Subscribe to reloads. Returns a function that unsubscribes."""
    _reload_callbacks.append(callback)

    def unsubscribe() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unsubscribe
