"""Execution engine: the programmatic invocation surface.

Every dispatch follows one path: resolve the toolchain (short-circuiting
before any process when it is missing), build a request, run it, classify
the raw result and apply the classified output to the cell exactly once.
Buffered runs and streamed runs differ only in how the raw result is
produced.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cellkernel.bridge import StaticBridge
from cellkernel.config import get_config, on_config_reload
from cellkernel.errors import EXIT_NOT_FOUND, UnsupportedLanguageError, WorkspaceError
from cellkernel.kernel.cell import CellKind
from cellkernel.kernel.state import KernelStateTracker
from cellkernel.logging import get_logger
from cellkernel.output import ClassifiedOutput, OutputKind, OutputProtocolParser
from cellkernel.runners import create_runner
from cellkernel.runners.result import ExecutionRequest, ExecutionResult, ExecutionStatus
from cellkernel.streaming import StreamConsumer, StreamOutcome, SubprocessStreamingBackend
from cellkernel.toolchain.languages import get_language, normalize_language
from cellkernel.toolchain.resolver import ToolchainResolver
from cellkernel.workspace import Workspace

if TYPE_CHECKING:
    from cellkernel.bridge import SharedMemoryBridge
    from cellkernel.config.schema import Config
    from cellkernel.kernel.cell import Cell, Notebook
    from cellkernel.streaming import StreamingBackend
    from cellkernel.toolchain.resolver import EnvironmentManager

log = get_logger("engine")

# Statuses whose runs never reached a toolchain and are not counted
_UNCOUNTED = frozenset({
    ExecutionStatus.CANCELLED,
    ExecutionStatus.TOOLCHAIN_NOT_FOUND,
    ExecutionStatus.IO_FAILURE,
})


@dataclass
class _ActiveRun:
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    superseded: bool = False


class ExecutionEngine:
    """Runs cells against local toolchains and tracks kernel state.

    Re-running a cell that is still running cancels the earlier run; the
    earlier run finishes its cleanup before the new one starts and its
    output is discarded.
    """

    def __init__(
        self,
        workspace: Workspace | None = None,
        *,
        resolver: ToolchainResolver | None = None,
        environment_manager: EnvironmentManager | None = None,
        tracker: KernelStateTracker | None = None,
        parser: OutputProtocolParser | None = None,
        bridge: SharedMemoryBridge | None = None,
        config: Config | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            workspace: Session workspace. Defaults to the configured root.
            resolver: Toolchain resolver. Built from config when None.
            environment_manager: Collaborator consulted by a default resolver.
            tracker: Kernel state tracker. A new one when None.
            parser: Output parser. A new one when None.
            bridge: Bridge snippet provider for the primary language.
            config: Configuration. The global config when None.
        """
        self.config = config or get_config()
        self._unsubscribe = None if config is not None else on_config_reload(self.apply_config)
        self.workspace = workspace or Workspace(self.config.workspace.root)
        self.resolver = resolver or ToolchainResolver(environment_manager, self.config.toolchains)
        self.tracker = tracker or KernelStateTracker(self.config.execution.restart_delay)
        self.parser = parser or OutputProtocolParser()
        self.bridge = bridge if bridge is not None else StaticBridge()
        self._active: dict[str, _ActiveRun] = {}

    # -------------------------------------------------------------------------
    # Invocation surface
    # -------------------------------------------------------------------------

    async def run_cell(self, cell: Cell, notebook: Notebook | None = None) -> ClassifiedOutput:
        """Run one cell with buffered output.

        Args:
            cell: Cell to run. Non-executable cells are left untouched.
            notebook: Owning notebook; its data-file bindings are prepended.

        Returns:
            The classified output applied to the cell.
        """
        if not cell.is_executable:
            return ClassifiedOutput(OutputKind.TEXT)

        async def produce(run: _ActiveRun, language: str, source: str) -> ExecutionResult:
            return await self._execute(cell.cell_id, language, source, run.cancel_event)

        return await self._dispatch(cell, notebook, produce)

    async def run_all(self, notebook: Notebook) -> list[ClassifiedOutput]:
        """Run every executable cell in notebook order, one at a time."""
        return [await self.run_cell(cell, notebook) for cell in notebook.code_cells()]

    async def run_tagged(self, notebook: Notebook, tag: str) -> list[ClassifiedOutput]:
        """Run the cells carrying a tag, in notebook order."""
        return [await self.run_cell(cell, notebook) for cell in notebook.cells_with_tag(tag)]

    async def stream_cell(
        self,
        cell: Cell,
        backend: StreamingBackend | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        on_flush: Callable[[str], None] | None = None,
    ) -> ClassifiedOutput:
        """Run one cell with streamed output.

        The cell's output text tracks the stream at the configured flush
        rate; the classified output replaces it once the stream ends.

        Args:
            cell: Cell to run.
            backend: Event source. The subprocess backend when None.
            cancel_event: Extra cancellation signal besides cancel().
            on_flush: Called with the accumulated text on each flush.
        """
        if not cell.is_executable:
            return ClassifiedOutput(OutputKind.TEXT)

        backend = backend or SubprocessStreamingBackend(
            self.resolver, self.workspace, self.config.execution, self.bridge
        )
        consumer = StreamConsumer(
            self.config.execution.flush_interval, self.config.execution.output_limit
        )

        def sink(text: str) -> None:
            cell.output_text = text
            if on_flush is not None:
                on_flush(text)

        async def produce(run: _ActiveRun, language: str, source: str) -> ExecutionResult:
            forward = None
            if cancel_event is not None:
                forward = asyncio.ensure_future(_forward(cancel_event, run.cancel_event))
            try:
                outcome = await consumer.consume(
                    backend.stream(source, language), sink, run.cancel_event
                )
            except Exception as e:
                log.warning("Streaming backend for cell %s failed to start: %s", cell.cell_id, e)
                outcome = StreamOutcome("", error=f"Streaming failed: {e}")
            finally:
                if forward is not None:
                    forward.cancel()
            return outcome.to_result(language)

        return await self._dispatch(cell, None, produce)

    def cancel(self, cell_id: str) -> bool:
        """Request cooperative cancellation of a cell's run.

        Returns:
            True if a run was in flight for the cell.
        """
        run = self._active.get(cell_id)
        if run is None or run.done.is_set():
            return False
        run.cancel_event.set()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for cell_id in list(self._active):
            if self.cancel(cell_id):
                cancelled += 1
        return cancelled

    def clear_outputs(self, notebook: Notebook) -> None:
        """Clear every cell's output, keeping execution ordinals."""
        for cell in notebook.cells:
            cell.clear_output()

    async def restart(self, notebook: Notebook) -> None:
        """Cancel in-flight runs, clear every cell and zero the counter."""
        runs = list(self._active.values())
        self.cancel_all()
        for run in runs:
            run.superseded = True
        for run in runs:
            await run.done.wait()
        self.tracker.restart(notebook.cells)

    @property
    def is_running(self) -> bool:
        return bool(self._active)

    def apply_config(self, config: Config) -> None:
        """Adopt reloaded execution settings for subsequent runs."""
        self.config = config
        self.tracker.restart_delay = config.execution.restart_delay
        for language, path in config.toolchains.paths.items():
            self.resolver.set_override(language, path)

    def close(self) -> None:
        """Cancel in-flight runs and stop following config reloads."""
        self.cancel_all()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def _dispatch(
        self,
        cell: Cell,
        notebook: Notebook | None,
        produce: Callable[[_ActiveRun, str, str], Awaitable[ExecutionResult]],
    ) -> ClassifiedOutput:
        previous = self._active.get(cell.cell_id)
        run = _ActiveRun()
        self._active[cell.cell_id] = run
        if previous is not None and not previous.done.is_set():
            log.debug("Cell %s re-run while running; cancelling earlier run", cell.cell_id)
            previous.superseded = True
            previous.cancel_event.set()
            try:
                await previous.done.wait()
            except asyncio.CancelledError:
                if self._active.get(cell.cell_id) is run:
                    del self._active[cell.cell_id]
                run.done.set()
                raise

        language, source = self._source_for(cell, notebook)

        self.tracker.begin()
        cell.is_running = True
        result: ExecutionResult | None = None
        try:
            result = await produce(run, language, source)
        finally:
            stamp = result is not None and result.status not in _UNCOUNTED and not run.superseded
            ordinal = self.tracker.complete(stamp)
            if self._active.get(cell.cell_id) is run:
                del self._active[cell.cell_id]
            run.done.set()
            if result is None or run.superseded:
                cell.is_running = False

        output = self._classify(result)
        if not run.superseded:
            cell.apply(output, ordinal, result.duration_ms)
        return output

    def _source_for(self, cell: Cell, notebook: Notebook | None) -> tuple[str, str]:
        if cell.kind is CellKind.PROCEDURE:
            language = self.config.toolchains.primary_language
        else:
            language = normalize_language(cell.language)
        source = cell.executable_source
        if notebook is not None:
            preamble = notebook.data_file_preamble(language)
            if preamble:
                source = preamble + source
        return language, source

    def _classify(self, result: ExecutionResult) -> ClassifiedOutput:
        try:
            root = self.workspace.root
            return self.parser.parse(result, root)
        except Exception as e:
            log.warning("Output classification failed: %s", e)
            return ClassifiedOutput(
                OutputKind.TEXT,
                result.output.strip(),
                is_error=result.is_failure,
                exit_code=result.exit_code,
                status=result.status,
            )

    async def _execute(
        self, cell_id: str, language: str, source: str, cancel_event: asyncio.Event
    ) -> ExecutionResult:
        """Resolve, prepare and run one buffered request."""
        try:
            spec = get_language(language)
        except UnsupportedLanguageError as e:
            return ExecutionResult(
                str(e), EXIT_NOT_FOUND, ExecutionStatus.TOOLCHAIN_NOT_FOUND, language=language
            )

        resolution = self.resolver.resolve(spec)
        if resolution.path is None:
            log.debug("Not spawning %s: no toolchain", spec.name)
            return ExecutionResult(
                resolution.hint, EXIT_NOT_FOUND, ExecutionStatus.TOOLCHAIN_NOT_FOUND,
                language=spec.name,
            )

        try:
            root = await self.workspace.ensure_async()
        except WorkspaceError as e:
            return ExecutionResult(str(e), None, ExecutionStatus.IO_FAILURE, language=spec.name)

        request = ExecutionRequest(
            cell_id=cell_id,
            source=source,
            language=spec.name,
            workspace_root=root,
            cancel_event=cancel_event,
            bridge=self.bridge.bridge_snippet(spec.name),
        )
        runner = create_runner(spec, resolution.path, self.config.execution)
        try:
            return await runner.run(request)
        except Exception as e:
            log.exception("Runner for %s raised", spec.name)
            return ExecutionResult(f"Error: {e}", None, ExecutionStatus.IO_FAILURE, language=spec.name)


async def _forward(source: asyncio.Event, target: asyncio.Event) -> None:
    await source.wait()
    target.set()
