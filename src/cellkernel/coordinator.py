"""Auto-run coordinator: debounce edits, analyse, then dispatch.

Each edit schedules one unit of work. A unit waits out the quiet period,
analyses the buffer in a worker thread and only then dispatches execution.
An edit arriving at any point before dispatch cancels the pending unit, so
execution never runs against analysis of a superseded edit.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

from cellkernel.analysis import AnalysisResult, analyze
from cellkernel.logging import get_logger

log = get_logger("coordinator")

DEFAULT_DEBOUNCE_DELAY = 0.6

Dispatch = Callable[[str, str], Awaitable[Any]]
AnalysisCallback = Callable[[AnalysisResult], None]
Analyzer = Callable[[str, str], AnalysisResult]


class AutoRunCoordinator:
    """Serializes analysis and execution per edit.

    Only the most recent edit survives the debounce delay. A newly
    dispatched execution cancels the previous one.
    """

    def __init__(
        self,
        dispatch: Dispatch,
        *,
        on_analysis: AnalysisCallback | None = None,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        auto_run: bool = True,
        analyzer: Analyzer = analyze,
    ) -> None:
        """Initialize the coordinator.

        Args:
            dispatch: Coroutine function run with (source, language).
            on_analysis: Receives the analysis of each surviving edit.
            debounce_delay: Quiet period in seconds before a unit proceeds.
            auto_run: Whether surviving edits dispatch execution.
            analyzer: Blocking analysis function run in a worker thread.
        """
        self._dispatch = dispatch
        self._on_analysis = on_analysis
        self.debounce_delay = debounce_delay
        self.auto_run = auto_run
        self._analyzer = analyzer
        self._generation = 0
        self._unit: asyncio.Task[None] | None = None
        self._execution: asyncio.Task[Any] | None = None
        self.last_analysis: AnalysisResult | None = None

    @property
    def generation(self) -> int:
        """Number of edits seen so far."""
        return self._generation

    @property
    def execution(self) -> asyncio.Task[Any] | None:
        return self._execution

    def on_edit(self, source: str, language: str) -> None:
        """Record an edit, replacing any pending unit.

        Must be called from within a running event loop.
        """
        self._generation += 1
        if self._unit is not None and not self._unit.done():
            self._unit.cancel()
        self._unit = asyncio.create_task(self._run_unit(self._generation, source, language))

    async def _run_unit(self, generation: int, source: str, language: str) -> None:
        await asyncio.sleep(self.debounce_delay)

        try:
            result = await asyncio.to_thread(self._analyzer, source, language)
        except Exception as e:
            log.warning("Analysis failed: %s", e)
            result = AnalysisResult(language)

        if generation != self._generation:
            log.debug("Dropping analysis for superseded edit %d", generation)
            return

        self.last_analysis = result
        if self._on_analysis is not None:
            try:
                self._on_analysis(result)
            except Exception as e:
                log.warning("Analysis callback failed: %s", e)

        if not self.auto_run:
            return

        previous = self._execution
        if previous is not None and not previous.done():
            previous.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await previous
        if generation != self._generation:
            return
        log.debug("Dispatching edit %d (%s)", generation, language)
        self._execution = asyncio.create_task(self._dispatch(source, language))

    async def flush(self) -> Any:
        """Wait for the pending unit and the execution it dispatched.

        Returns:
            The execution's result, or None if nothing was dispatched.
        """
        unit = self._unit
        if unit is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await unit
        execution = self._execution
        if execution is None:
            return None
        try:
            return await execution
        except asyncio.CancelledError:
            return None

    async def close(self) -> None:
        """Cancel the pending unit and any running execution."""
        for task in (self._unit, self._execution):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._unit, self._execution):
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._unit = None
        self._execution = None

    async def __aenter__(self) -> AutoRunCoordinator:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
