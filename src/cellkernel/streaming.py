"""Streamed execution with throttled flushing and cooperative cancellation.

The interactive surface consumes a sequence of StreamEvents instead of one
buffered result. StreamConsumer accumulates chunks and pushes the buffer to
a sink at a bounded rate, so chatty or non-terminating programs do not
flood the observer. A stream stopped by cancellation is reported as
cancelled, never as a runtime failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from cellkernel.config.schema import ExecutionConfig
from cellkernel.errors import EXIT_CANCELLED, EXIT_NOT_FOUND, UnsupportedLanguageError
from cellkernel.logging import TRACE, get_logger
from cellkernel.runners import create_runner
from cellkernel.runners.process import spawn, terminate_process
from cellkernel.runners.result import ExecutionRequest, ExecutionResult, ExecutionStatus
from cellkernel.toolchain.languages import get_language

if TYPE_CHECKING:
    from cellkernel.bridge import SharedMemoryBridge
    from cellkernel.toolchain.resolver import ToolchainResolver
    from cellkernel.workspace import Workspace

log = get_logger("streaming")

READ_CHUNK = 4096


class StreamKind(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT = "exit"


@dataclass(frozen=True)
class StreamEvent:
    """One event of a streamed run.

    Attributes:
        kind: Chunk stream or EXIT.
        data: Text chunk (empty for EXIT).
        exit_code: Exit code carried by the EXIT event.
        status: Failure status carried by an EXIT event when the run never
            reached the program (compile failure, missing toolchain).
    """

    kind: StreamKind
    data: str = ""
    exit_code: int | None = None
    status: ExecutionStatus | None = None

    @classmethod
    def stdout(cls, data: str) -> StreamEvent:
        return cls(StreamKind.STDOUT, data)

    @classmethod
    def stderr(cls, data: str) -> StreamEvent:
        return cls(StreamKind.STDERR, data)

    @classmethod
    def exit(cls, exit_code: int | None, status: ExecutionStatus | None = None) -> StreamEvent:
        return cls(StreamKind.EXIT, exit_code=exit_code, status=status)


class StreamingBackend(Protocol):
    """Produces the event sequence for a source and language."""

    def stream(self, source: str, language: str) -> AsyncIterator[StreamEvent]:
        """Yield chunk events followed by one EXIT event."""
        ...


@dataclass
class StreamOutcome:
    """What a consumer saw by the time the stream ended."""

    text: str
    exit_code: int | None = None
    cancelled: bool = False
    error: str | None = None
    status: ExecutionStatus | None = None
    truncated: bool = False
    duration_ms: float = 0.0

    def to_result(self, language: str = "") -> ExecutionResult:
        """Fold the outcome into an ExecutionResult for classification."""
        if self.cancelled:
            status = ExecutionStatus.CANCELLED
            exit_code: int | None = EXIT_CANCELLED
        elif self.error is not None:
            status = ExecutionStatus.IO_FAILURE
            exit_code = self.exit_code
        elif self.status is not None:
            status = self.status
            exit_code = self.exit_code
        else:
            exit_code = self.exit_code
            status = ExecutionStatus.OK if exit_code == 0 else ExecutionStatus.RUNTIME_FAILURE
        text = self.text
        if self.error is not None:
            text = f"{text}\n{self.error}" if text else self.error
        return ExecutionResult(
            text, exit_code, status, self.duration_ms, truncated=self.truncated, language=language
        )


Sink = Callable[[str], None]


class StreamConsumer:
    """Accumulates streamed chunks and flushes them at a bounded rate."""

    def __init__(
        self,
        flush_interval: float = 0.1,
        output_limit: int = 200_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.flush_interval = flush_interval
        self.output_limit = output_limit
        self._clock = clock

    async def consume(
        self,
        events: AsyncIterator[StreamEvent],
        sink: Sink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> StreamOutcome:
        """Drain events into a buffer.

        The sink receives the whole buffer so far, at most once per
        flush_interval while chunks arrive, and once more when the stream
        ends if anything is unflushed.

        Args:
            events: Event source; closed when consumption stops early.
            sink: Receives the accumulated text on each flush.
            cancel_event: When set, no further events are pulled.
        """
        start = self._clock()
        chunks: list[str] = []
        size = 0
        truncated = False
        dirty = False
        last_flush = start
        outcome = StreamOutcome("")
        cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None

        def flush() -> None:
            nonlocal dirty, last_flush
            last_flush = self._clock()
            if dirty and sink is not None:
                sink("".join(chunks))
            dirty = False

        iterator = aiter(events)
        pull: asyncio.Future[StreamEvent | None] | None = None
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    outcome.cancelled = True
                    break

                pull = asyncio.ensure_future(_next_event(iterator))
                waiters: set[asyncio.Future[object]] = {pull}  # type: ignore[arg-type]
                if cancel_wait is not None:
                    waiters.add(cancel_wait)  # type: ignore[arg-type]
                timeout = None
                if dirty:
                    timeout = max(0.0, self.flush_interval - (self._clock() - last_flush))
                done, _ = await asyncio.wait(
                    waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )

                while not done:
                    # Flush deadline reached with no new event
                    flush()
                    done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if pull not in done:
                    outcome.cancelled = True
                    break

                try:
                    event = pull.result()
                except Exception as e:
                    if cancel_event is not None and cancel_event.is_set():
                        outcome.cancelled = True
                    else:
                        log.warning("Streaming backend failed: %s", e)
                        outcome.error = f"Streaming failed: {e}"
                    break

                if event is None:
                    break

                if event.kind is StreamKind.EXIT:
                    outcome.exit_code = event.exit_code
                    outcome.status = event.status
                    break

                log.log(TRACE, "%s chunk: %d chars", event.kind.value, len(event.data))
                if event.data and not truncated:
                    remaining = self.output_limit - size if self.output_limit else len(event.data)
                    data = event.data[:remaining]
                    if len(data) < len(event.data):
                        truncated = True
                        data += "\n... (output truncated)"
                    chunks.append(data)
                    size += len(data)
                    dirty = True

                if dirty and self._clock() - last_flush >= self.flush_interval:
                    flush()
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if pull is not None and not pull.done():
                # Cancelling the pending pull unwinds the backend's own cleanup
                pull.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await pull
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()

        flush()
        outcome.text = "".join(chunks)
        outcome.truncated = truncated
        outcome.duration_ms = (self._clock() - start) * 1000
        return outcome


async def _next_event(iterator: AsyncIterator[StreamEvent]) -> StreamEvent | None:
    """Next event, or None once the iterator is exhausted."""
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return None


async def _pump(
    stream: asyncio.StreamReader, kind: StreamKind, queue: asyncio.Queue[StreamEvent | None]
) -> None:
    try:
        while True:
            data = await stream.read(READ_CHUNK)
            if not data:
                break
            await queue.put(StreamEvent(kind, data.decode("utf-8", errors="replace")))
    finally:
        await queue.put(None)


class SubprocessStreamingBackend:
    """Default backend: runs cells through the regular runners, streamed.

    Files are prepared (and compiled) by the same runner used for buffered
    runs; only the final process is read incrementally. Artifacts and the
    process are cleaned up when the generator finishes, is closed, or is
    cancelled.
    """

    def __init__(
        self,
        resolver: ToolchainResolver,
        workspace: Workspace,
        config: ExecutionConfig | None = None,
        bridge: SharedMemoryBridge | None = None,
    ) -> None:
        self.resolver = resolver
        self.workspace = workspace
        self.config = config or ExecutionConfig()
        self.bridge = bridge

    async def stream(self, source: str, language: str) -> AsyncIterator[StreamEvent]:
        try:
            spec = get_language(language)
        except UnsupportedLanguageError as e:
            yield StreamEvent.stderr(str(e))
            yield StreamEvent.exit(EXIT_NOT_FOUND, ExecutionStatus.TOOLCHAIN_NOT_FOUND)
            return

        resolution = self.resolver.resolve(spec)
        if resolution.path is None:
            yield StreamEvent.stderr(resolution.hint)
            yield StreamEvent.exit(EXIT_NOT_FOUND, ExecutionStatus.TOOLCHAIN_NOT_FOUND)
            return

        root = await self.workspace.ensure_async()
        runner = create_runner(spec, resolution.path, self.config)
        request = ExecutionRequest(
            cell_id="stream",
            source=source,
            language=spec.name,
            workspace_root=root,
            bridge=self.bridge.bridge_snippet(spec.name) if self.bridge else "",
        )

        async with runner.prepared(request) as prepared:
            if prepared.failure is not None:
                if prepared.failure.output:
                    yield StreamEvent.stderr(prepared.failure.output)
                yield StreamEvent.exit(prepared.failure.exit_code, prepared.failure.status)
                return

            try:
                process = await spawn(
                    prepared.command, prepared.cwd or root, separate_stderr=True
                )
            except OSError as e:
                yield StreamEvent.stderr(f"Failed to start {spec.display_name}: {e}")
                yield StreamEvent.exit(EXIT_NOT_FOUND, ExecutionStatus.IO_FAILURE)
                return

            queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
            assert process.stdout is not None and process.stderr is not None
            pumps = [
                asyncio.create_task(_pump(process.stdout, StreamKind.STDOUT, queue)),
                asyncio.create_task(_pump(process.stderr, StreamKind.STDERR, queue)),
            ]
            try:
                open_pipes = len(pumps)
                while open_pipes:
                    event = await queue.get()
                    if event is None:
                        open_pipes -= 1
                        continue
                    yield event
                exit_code = await process.wait()
                yield StreamEvent.exit(exit_code)
            finally:
                for pump in pumps:
                    pump.cancel()
                if process.returncode is None:
                    await terminate_process(process, self.config.kill_grace)
                for pump in pumps:
                    with contextlib.suppress(asyncio.CancelledError):
                        await pump
