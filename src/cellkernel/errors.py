"""Error taxonomy for cell execution.

Expected failures (missing toolchain, compile errors, non-zero exits, I/O
problems, cancellation) travel as ExecutionResult values whose
ExecutionStatus names the failure, never as raised exceptions. The
exception classes below are for misuse that the engine converts into
results at its boundary.
"""

from __future__ import annotations

# Conventional shell exit codes, also used for synthesized results
EXIT_NOT_FOUND = 127
EXIT_PERMISSION_DENIED = 126
EXIT_CANCELLED = -1


class CellKernelError(Exception):
    """Base class for cellkernel errors."""


class UnsupportedLanguageError(CellKernelError):
    """Raised when no language spec exists for a language tag."""

    def __init__(self, language: str) -> None:
        super().__init__(f"Unsupported language: {language}")
        self.language = language


class ToolchainNotFoundError(CellKernelError):
    """Raised by strict resolution when no executable can be located."""

    def __init__(self, language: str, hint: str) -> None:
        super().__init__(hint)
        self.language = language
        self.hint = hint


class WorkspaceError(CellKernelError):
    """Raised when the workspace directory cannot be created or used."""
