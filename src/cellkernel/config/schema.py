"""Typed configuration sections.

Every field has a default so a file may set any subset of keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ExecutionConfig:
    """Execution timing and capture limits.

    Example config.yaml:
        execution:
          timeout: 120
          debounce_delay: 0.6
          flush_interval: 0.1
          auto_run: true
    """

    timeout: float | None = 300.0  # Seconds per run; None disables the limit
    output_limit: int = 200_000  # Characters of captured output kept per run
    debounce_delay: float = 0.6  # Quiet period before an edit is analyzed
    flush_interval: float = 0.1  # Minimum seconds between streamed flushes
    restart_delay: float = 1.0  # Seconds the kernel stays "restarted"
    kill_grace: float = 2.0  # Seconds between terminate() and kill()
    auto_run: bool = True  # Playground runs code after every analyzed edit


@dataclass
class WorkspaceConfig:
    """Workspace location.

    When root is unset the workspace lives in the user data directory.
    """

    root: str | None = None


@dataclass
class ToolchainConfig:
    """Per-language executable overrides.

    Example config.yaml:
        toolchains:
          paths:
            python: /opt/envs/data/bin/python
            rust: ~/.cargo/bin/rustc
    """

    paths: dict[str, str] = field(default_factory=dict)
    primary_language: str = "python"  # Language that receives the bridge snippet


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """All sections of the merged configuration."""

    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    toolchains: ToolchainConfig = field(default_factory=ToolchainConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unrecognized top-level keys, kept as parsed
    extra: dict[str, Any] = field(default_factory=dict)
