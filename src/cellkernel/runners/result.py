"""Execution request and result dataclasses."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ExecutionStatus(Enum):
    """Outcome of a single run."""

    OK = "ok"
    RUNTIME_FAILURE = "runtime_failure"
    COMPILE_FAILURE = "compile_failure"
    TOOLCHAIN_NOT_FOUND = "toolchain_not_found"
    IO_FAILURE = "io_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class ExecutionRequest:
    """One invocation of a runner.

    Attributes:
        cell_id: Cell that requested the run.
        source: Cell source before setup/epilogue injection.
        language: Canonical language tag.
        workspace_root: Session workspace directory.
        cancel_event: Set to request cooperative cancellation.
        run_id: Per-invocation identifier used to namespace artifacts.
        bridge: Snippet spliced into the primary language's preamble.
        timeout: Seconds allowed per process phase; None for no limit.
    """

    cell_id: str
    source: str
    language: str
    workspace_root: Path
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    bridge: str = ""
    timeout: float | None = None

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class ExecutionResult:
    """Raw outcome of a run, before output classification.

    Attributes:
        output: Captured text (stdout and stderr in output order, or
            compiler diagnostics for a compile failure).
        exit_code: Process exit code, or None if killed/timed out.
        status: Execution status.
        duration_ms: Wall time in milliseconds.
        truncated: True if output was cut at the output limit.
        language: Canonical language tag.
        signal: Signal name when the process was terminated by us.
    """

    output: str
    exit_code: int | None
    status: ExecutionStatus
    duration_ms: float = 0.0
    truncated: bool = False
    language: str = ""
    signal: str | None = None

    @property
    def success(self) -> bool:
        """True if the run completed with exit code 0."""
        return self.status is ExecutionStatus.OK

    @property
    def cancelled(self) -> bool:
        return self.status is ExecutionStatus.CANCELLED

    @property
    def is_failure(self) -> bool:
        """True for every outcome except success and cancellation."""
        return not (self.success or self.cancelled)

    def __repr__(self) -> str:
        if self.success:
            lines = self.output.count("\n") + 1 if self.output else 0
            return f"<ExecutionResult ok, {lines} lines>"
        return f"<ExecutionResult {self.status.value}, exit={self.exit_code}>"
