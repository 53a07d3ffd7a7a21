"""Runner for compiled languages (Rust, C++, C, Objective-C)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from cellkernel.logging import VERBOSE, get_logger
from cellkernel.runners.base import BaseRunner, PreparedRun, normalize_quotes, remove_artifacts
from cellkernel.runners.process import run_process
from cellkernel.runners.result import ExecutionResult, ExecutionStatus

if TYPE_CHECKING:
    from pathlib import Path

    from cellkernel.config.schema import ExecutionConfig
    from cellkernel.runners.result import ExecutionRequest
    from cellkernel.toolchain.languages import CompiledLanguage

log = get_logger("runner.compiled")


class CompiledRunner(BaseRunner):
    """Two-phase runner: compile into the workspace, then run the binary.

    A non-zero compiler exit short-circuits to COMPILE_FAILURE carrying the
    compiler diagnostics. Source, binary and side files are removed after
    the run phase or after a failed compile.
    """

    spec: CompiledLanguage

    def __init__(
        self,
        spec: CompiledLanguage,
        executable: str,
        config: ExecutionConfig | None = None,
    ) -> None:
        super().__init__(spec, executable, config)

    async def compile(
        self, request: ExecutionRequest, source_path: Path, binary_path: Path
    ) -> ExecutionResult:
        """Phase 1: compile source_path into binary_path.

        Returns:
            OK on success, COMPILE_FAILURE with diagnostics on a non-zero
            exit, or the process-level failure (timeout, cancelled, ...).
        """
        result = await run_process(
            self.spec.compile_command(self.executable, source_path, binary_path),
            request.workspace_root,
            capture="stderr",
            timeout=self._timeout(request),
            output_limit=self.config.output_limit,
            cancel_event=request.cancel_event,
            kill_grace=self.config.kill_grace,
            language=self.spec.name,
        )
        if result.status is ExecutionStatus.RUNTIME_FAILURE:
            log.log(
                VERBOSE, "Compile failed for cell %s (exit %s)", request.cell_id, result.exit_code
            )
            result.status = ExecutionStatus.COMPILE_FAILURE
        return result

    @asynccontextmanager
    async def prepared(self, request: ExecutionRequest) -> AsyncIterator[PreparedRun]:
        source_path = request.workspace_root / f"cell_{request.run_id}{self.spec.suffix}"
        binary_path = self.spec.binary_path(source_path)
        artifacts = [source_path, binary_path, *self.spec.side_files(binary_path)]
        try:
            await self._write(source_path, normalize_quotes(request.source))
            compiled = await self.compile(request, source_path, binary_path)
            if not compiled.success:
                yield PreparedRun(failure=compiled, artifacts=artifacts)
                return
            if not binary_path.exists():
                yield PreparedRun(
                    failure=ExecutionResult(
                        f"Compiler reported success but produced no binary at {binary_path.name}",
                        compiled.exit_code,
                        ExecutionStatus.IO_FAILURE,
                        compiled.duration_ms,
                        language=self.spec.name,
                    ),
                    artifacts=artifacts,
                )
                return
            yield PreparedRun(
                command=[str(binary_path)],
                cwd=request.workspace_root,
                artifacts=artifacts,
            )
        finally:
            remove_artifacts(artifacts)
