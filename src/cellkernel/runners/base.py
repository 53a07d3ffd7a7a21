"""Runner protocol and shared base class.

A runner turns an ExecutionRequest into an ExecutionResult. Both variants
split the work into a prepare step (write files, compile) exposed as an
async context manager, and a run step. The context manager owns every
per-run artifact and removes it on exit, so buffered runs and streamed runs
share one cleanup path.
"""

from __future__ import annotations

import asyncio
import shutil
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from cellkernel.config.schema import ExecutionConfig
from cellkernel.errors import EXIT_CANCELLED
from cellkernel.logging import VERBOSE, get_logger
from cellkernel.runners.process import run_process
from cellkernel.runners.result import ExecutionRequest, ExecutionResult, ExecutionStatus

if TYPE_CHECKING:
    from cellkernel.toolchain.languages import LanguageSpec

log = get_logger("runner")


class Runner(Protocol):
    """Protocol for per-language executors."""

    spec: LanguageSpec

    async def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute the request and return the raw result.

        Expected failures are returned as results, never raised.
        """
        ...


@dataclass
class PreparedRun:
    """Command ready to execute, or the failure that prevented it.

    Attributes:
        command: Command line for the run phase.
        cwd: Working directory for the run phase.
        failure: Result to report instead of running (e.g. compile failure).
        artifacts: Files removed when the prepare context exits.
    """

    command: list[str] = field(default_factory=list)
    cwd: Path | None = None
    failure: ExecutionResult | None = None
    artifacts: list[Path] = field(default_factory=list)


_SMART_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


def normalize_quotes(source: str) -> str:
    """Replace typographic quotes that text editors substitute while typing."""
    return source.translate(_SMART_QUOTES)


class BaseRunner(ABC):
    """Shared run() logic over a variant-specific prepare step."""

    def __init__(
        self,
        spec: LanguageSpec,
        executable: str,
        config: ExecutionConfig | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            spec: Language spec for this runner.
            executable: Resolved interpreter or compiler path.
            config: Execution limits; defaults are used when None.
        """
        self.spec = spec
        self.executable = executable
        self.config = config or ExecutionConfig()

    @abstractmethod
    def prepared(self, request: ExecutionRequest) -> AsyncIterator[PreparedRun]:
        """Async context manager yielding the prepared run.

        Implementations must remove every artifact they create on exit,
        including when the body raises or is cancelled.
        """

    def _timeout(self, request: ExecutionRequest) -> float | None:
        return request.timeout if request.timeout is not None else self.config.timeout

    async def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Prepare, execute, and clean up.

        Returns:
            ExecutionResult; IO problems while preparing become IO_FAILURE.
        """
        try:
            async with self.prepared(request) as prepared:
                if prepared.failure is not None:
                    return prepared.failure
                if request.cancelled:
                    return self._cancelled()
                result = await run_process(
                    prepared.command,
                    prepared.cwd or request.workspace_root,
                    timeout=self._timeout(request),
                    output_limit=self.config.output_limit,
                    cancel_event=request.cancel_event,
                    kill_grace=self.config.kill_grace,
                    language=self.spec.name,
                )
                log.log(
                    VERBOSE,
                    "%s run %s finished: %s in %.0fms",
                    self.spec.name, request.run_id, result.status.value, result.duration_ms,
                )
                return result
        except OSError as e:
            log.warning("%s run %s failed: %s", self.spec.name, request.run_id, e)
            return ExecutionResult(
                f"I/O error: {e}", None, ExecutionStatus.IO_FAILURE, language=self.spec.name
            )

    def _cancelled(self) -> ExecutionResult:
        return ExecutionResult("", EXIT_CANCELLED, ExecutionStatus.CANCELLED, language=self.spec.name)

    async def _write(self, path: Path, text: str) -> None:
        """Write a file off the event loop.

        The write is allowed to finish even if the caller is cancelled, so the
        cleanup that follows always sees the file it has to remove.
        """
        write = asyncio.ensure_future(asyncio.to_thread(path.write_text, text, encoding="utf-8"))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            await write
            raise


def remove_artifacts(paths: list[Path]) -> None:
    """Delete per-run artifacts, ignoring ones that are already gone."""
    for path in paths:
        try:
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink(missing_ok=True)
        except OSError as e:
            log.warning("Failed to remove %s: %s", path, e)

