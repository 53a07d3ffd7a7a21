"""Single-buffer playground: streamed runs driven by the auto-run coordinator."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from cellkernel.coordinator import AutoRunCoordinator
from cellkernel.kernel.cell import Cell

if TYPE_CHECKING:
    from cellkernel.analysis import AnalysisResult
    from cellkernel.kernel.engine import ExecutionEngine
    from cellkernel.output import ClassifiedOutput
    from cellkernel.streaming import StreamingBackend


class Playground:
    """One editable buffer whose output streams into a backing cell."""

    def __init__(
        self,
        engine: ExecutionEngine,
        *,
        language: str = "python",
        source: str = "",
        backend: StreamingBackend | None = None,
        auto_run: bool | None = None,
        on_output: Callable[[str], None] | None = None,
        on_analysis: Callable[[AnalysisResult], None] | None = None,
    ) -> None:
        self.engine = engine
        self.backend = backend
        self.cell = Cell(source=source, language=language)
        self._on_output = on_output
        execution = engine.config.execution
        self.coordinator = AutoRunCoordinator(
            self._dispatch,
            on_analysis=on_analysis,
            debounce_delay=execution.debounce_delay,
            auto_run=execution.auto_run if auto_run is None else auto_run,
        )

    @property
    def source(self) -> str:
        return self.cell.source

    @property
    def language(self) -> str:
        return self.cell.language

    @property
    def output(self) -> str:
        return self.cell.output_text

    @property
    def analysis(self) -> AnalysisResult | None:
        return self.coordinator.last_analysis

    def edit(self, source: str, language: str | None = None) -> None:
        """Replace the buffer and schedule analysis and auto-run."""
        self.cell.source = source
        if language is not None:
            self.cell.language = language
        self.coordinator.on_edit(self.cell.source, self.cell.language)

    async def run(self) -> ClassifiedOutput:
        """Run the current buffer now, bypassing the debounce."""
        return await self.engine.stream_cell(self.cell, self.backend, on_flush=self._on_output)

    async def _dispatch(self, source: str, language: str) -> ClassifiedOutput:
        # Superseded edits never dispatch, so the cell still holds this source
        return await self.run()

    def stop(self) -> bool:
        """Cooperatively cancel the running execution."""
        return self.engine.cancel(self.cell.cell_id)

    async def close(self) -> None:
        """Shut the coordinator down and cancel any run still in flight."""
        await self.coordinator.close()
        self.stop()
