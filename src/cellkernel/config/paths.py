"""Where cellkernel looks for config files and keeps its workspace.

Config files, lowest priority first:

    system   /etc/cellkernel/config.yaml         %PROGRAMDATA%\\cellkernel\\config.yaml
    user     $XDG_CONFIG_HOME/cellkernel/...     %APPDATA%\\cellkernel\\config.yaml
             (~/.config, else ~/.cellkernel)
    project  <project>/.cellkernel/config.yaml

The default workspace lives in the per-user data directory.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "cellkernel"
SHORT_NAME = ".cellkernel"
WORKSPACE_DIRNAME = "notebooks_workspace"


def _windows() -> bool:
    return sys.platform == "win32"


def _env_dir(*names: str) -> Path | None:
    """First of the named environment variables that is set, as a Path."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return Path(value)
    return None


def get_system_config_path() -> Path | None:
    """System-wide config file; None on Windows without %PROGRAMDATA%."""
    if not _windows():
        return Path("/etc") / APP_NAME / CONFIG_FILENAME
    base = _env_dir("PROGRAMDATA")
    return base / APP_NAME / CONFIG_FILENAME if base else None


def get_user_config_path() -> Path | None:
    """Per-user config file (may not exist)."""
    if _windows():
        base = _env_dir("APPDATA")
        return base / APP_NAME / CONFIG_FILENAME if base else None

    base = _env_dir("XDG_CONFIG_HOME")
    if base is None:
        dot_config = Path.home() / ".config"
        if not dot_config.exists():
            return Path.home() / SHORT_NAME / CONFIG_FILENAME
        base = dot_config
    return base / APP_NAME / CONFIG_FILENAME


def get_project_dir(project_root: str | Path) -> Path:
    """The ``.cellkernel`` directory of a project (config, saved notebooks)."""
    return Path(project_root) / SHORT_NAME


def get_project_config_path(project_root: str) -> Path:
    return get_project_dir(project_root) / CONFIG_FILENAME


def get_config_paths(project_root: str | None = None) -> list[Path]:
    """Config files to merge, lowest priority first."""
    candidates = [get_system_config_path(), get_user_config_path()]
    if project_root:
        candidates.append(get_project_config_path(project_root))
    return [path for path in candidates if path is not None]


def get_default_workspace_root() -> Path:
    """Per-user workspace directory used when no root is configured."""
    if _windows():
        base = _env_dir("LOCALAPPDATA", "APPDATA")
        if base is None:
            return Path.home() / SHORT_NAME / WORKSPACE_DIRNAME
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = _env_dir("XDG_DATA_HOME") or Path.home() / ".local" / "share"
    return base / APP_NAME / WORKSPACE_DIRNAME
