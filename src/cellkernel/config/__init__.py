"""Layered YAML configuration.

Files are merged system, then user, then project (``.cellkernel/config.yaml``
in the project root); CK_LOG and CK_WORKSPACE override all of them.

    from cellkernel.config import load_config

    config = load_config(project_root="/path/to/project")
    config.execution.timeout
    config.toolchains.paths.get("rust")
"""

from cellkernel.config.loader import (
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from cellkernel.config.paths import (
    get_config_paths,
    get_default_workspace_root,
    get_project_config_path,
    get_project_dir,
    get_system_config_path,
    get_user_config_path,
)
from cellkernel.config.schema import (
    Config,
    ExecutionConfig,
    LoggingConfig,
    ToolchainConfig,
    WorkspaceConfig,
)
from cellkernel.config.watcher import ConfigWatcher

__all__ = [
    "Config",
    "ConfigWatcher",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    "ExecutionConfig",
    "LoggingConfig",
    "ToolchainConfig",
    "WorkspaceConfig",
    "get_config_paths",
    "get_default_workspace_root",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
    "get_project_dir",
]
