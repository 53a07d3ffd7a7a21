"""Logging for cellkernel.

All modules log through children of the ``cellkernel`` logger
(``get_logger("engine")`` -> ``cellkernel.engine``). Nothing is emitted
until ``setup_logging`` attaches a handler:

- a log file from ``logging.file`` in config, or CK_LOG
- otherwise an explicit stream, or stderr when it is a console

Verbosity runs from 0 (errors) to 4 (trace); run lifecycle events
(spawn, compile, kill) log at VERBOSE, stream chunks at TRACE.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from cellkernel.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("cellkernel")

_handlers: list[logging.Handler] = []

_NAMED_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)


class _KernelFormatter(logging.Formatter):
    """Lowercase level names and the logger name relative to ``cellkernel``."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        record.component = record.name.partition(".")[2] or "kernel"
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Log level for a logging section; ``verbose`` wins over ``level``."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    if config.level:
        return _NAMED_LEVELS.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None, stream: TextIO | None = None) -> bool:
    """Attach handlers to the ``cellkernel`` logger.

    Only the first call configures anything; later calls return False
    until ``reset_logging`` runs.

    Args:
        config: Logging section of the loaded config.
        stream: Stream to log to when no log file is set. When None,
            stderr is used only if it is a console, so an embedding host
            reading our stderr never sees log lines.

    Returns:
        True if handlers were attached by this call.
    """
    if _handlers:
        return False

    level = resolve_level(config)
    logger.setLevel(level)
    formatter = _KernelFormatter(
        "%(asctime)s %(levelname)s [%(component)s] %(message)s", datefmt="%H:%M:%S"
    )

    log_path = config.file if config and config.file else os.environ.get("CK_LOG")
    handler: logging.Handler | None = None
    if log_path:
        try:
            handler = logging.FileHandler(
                os.path.expanduser(log_path), mode="a", encoding="utf-8"
            )
        except OSError as e:
            print(f"[cellkernel] cannot open log file {log_path}: {e}", file=sys.stderr)

    if handler is None:
        if stream is not None:
            handler = logging.StreamHandler(stream)
        elif sys.stderr.isatty():
            handler = logging.StreamHandler(sys.stderr)
        else:
            handler = logging.NullHandler()

    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    _handlers.append(handler)
    return True


def reset_logging() -> None:
    """Detach and close handlers attached by ``setup_logging``."""
    while _handlers:
        handler = _handlers.pop()
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the ``cellkernel`` logger, or a named child of it."""
    if name:
        return logger.getChild(name)
    return logger
