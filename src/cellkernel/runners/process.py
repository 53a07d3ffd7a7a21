"""Subprocess execution shared by both runner variants."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import subprocess
import sys
import time
from typing import Literal

from cellkernel.errors import EXIT_CANCELLED, EXIT_NOT_FOUND, EXIT_PERMISSION_DENIED
from cellkernel.logging import VERBOSE, get_logger
from cellkernel.runners.result import ExecutionResult, ExecutionStatus

log = get_logger("process")

Capture = Literal["merged", "stderr"]

_POSIX = os.name == "posix"


def _truncate(output: str, output_limit: int) -> tuple[str, bool]:
    if output_limit and len(output) > output_limit:
        return output[:output_limit] + "\n... (output truncated)", True
    return output, False


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    """Send a signal to the process group (POSIX) or the process itself."""
    with contextlib.suppress(ProcessLookupError, PermissionError):
        if _POSIX:
            os.killpg(process.pid, sig)
        elif sig == getattr(signal, "SIGKILL", None):
            process.kill()
        else:
            process.terminate()


async def terminate_process(process: asyncio.subprocess.Process, grace: float = 2.0) -> str | None:
    """Terminate a process, escalating to kill after a grace period.

    Returns:
        Name of the last signal sent, or None if the process had already exited.
    """
    if process.returncode is not None:
        return None

    _signal_group(process, signal.SIGTERM)
    sent = "SIGTERM"
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        _signal_group(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        sent = "SIGKILL"
        with contextlib.suppress(ProcessLookupError):
            await process.wait()
    log.log(VERBOSE, "Terminated pid %s with %s", process.pid, sent)
    return sent


async def spawn(
    args: list[str],
    cwd: str | os.PathLike[str],
    *,
    capture: Capture = "merged",
    env: dict[str, str] | None = None,
    separate_stderr: bool = False,
) -> asyncio.subprocess.Process:
    """Start a subprocess in its own process group.

    Args:
        args: Command line.
        cwd: Working directory.
        capture: "merged" pipes stdout with stderr folded in; "stderr" keeps
            only diagnostics.
        env: Additional environment variables.
        separate_stderr: Pipe stderr on its own (streaming mode).
    """
    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    if capture == "stderr":
        stdout = asyncio.subprocess.DEVNULL
        stderr = asyncio.subprocess.PIPE
    else:
        stdout = asyncio.subprocess.PIPE
        stderr = asyncio.subprocess.PIPE if separate_stderr else asyncio.subprocess.STDOUT

    kwargs: dict[str, object] = {}
    if _POSIX:
        kwargs["start_new_session"] = True
    elif sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=stdout,
        stderr=stderr,
        cwd=str(cwd),
        env=process_env,
        **kwargs,  # type: ignore[arg-type]
    )
    log.log(VERBOSE, "Spawned pid %s: %s", process.pid, args[0])
    return process


async def run_process(
    args: list[str],
    cwd: str | os.PathLike[str],
    *,
    capture: Capture = "merged",
    timeout: float | None = None,
    output_limit: int = 200_000,
    cancel_event: asyncio.Event | None = None,
    env: dict[str, str] | None = None,
    kill_grace: float = 2.0,
    language: str = "",
) -> ExecutionResult:
    """Run a command to completion and capture its output.

    The process is terminated on timeout, on cancel_event, and when the
    calling task is cancelled; in the last case CancelledError is re-raised
    after the process is gone.

    Args:
        args: Command line.
        cwd: Working directory.
        capture: "merged" for program output, "stderr" for compiler diagnostics.
        timeout: Seconds before the process is killed. None for no timeout.
        output_limit: Maximum characters of output to keep.
        cancel_event: Cooperative cancellation signal.
        env: Additional environment variables.
        kill_grace: Seconds between SIGTERM and SIGKILL.
        language: Language tag recorded on the result.

    Returns:
        ExecutionResult with status OK, RUNTIME_FAILURE, TIMEOUT, CANCELLED,
        TOOLCHAIN_NOT_FOUND or IO_FAILURE.
    """
    start_time = time.perf_counter()

    def elapsed() -> float:
        return (time.perf_counter() - start_time) * 1000

    if cancel_event is not None and cancel_event.is_set():
        return ExecutionResult("", EXIT_CANCELLED, ExecutionStatus.CANCELLED, 0.0, language=language)

    try:
        process = await spawn(args, cwd, capture=capture, env=env)
    except FileNotFoundError:
        return ExecutionResult(
            f"Command not found: {args[0]}",
            EXIT_NOT_FOUND,
            ExecutionStatus.TOOLCHAIN_NOT_FOUND,
            elapsed(),
            language=language,
        )
    except PermissionError:
        return ExecutionResult(
            f"Permission denied: {args[0]}",
            EXIT_PERMISSION_DENIED,
            ExecutionStatus.IO_FAILURE,
            elapsed(),
            language=language,
        )
    except OSError as e:
        return ExecutionResult(
            f"OS error: {e}", 1, ExecutionStatus.IO_FAILURE, elapsed(), language=language
        )

    communicate = asyncio.ensure_future(process.communicate())
    cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
    waiters: set[asyncio.Future[object]] = {communicate}  # type: ignore[arg-type]
    if cancel_wait is not None:
        waiters.add(cancel_wait)  # type: ignore[arg-type]

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

        if communicate in done:
            stdout_data, stderr_data = communicate.result()
            raw = stderr_data if capture == "stderr" else stdout_data
            output, truncated = _truncate(
                (raw or b"").decode("utf-8", errors="replace"), output_limit
            )
            exit_code = process.returncode
            status = ExecutionStatus.OK if exit_code == 0 else ExecutionStatus.RUNTIME_FAILURE
            return ExecutionResult(
                output, exit_code, status, elapsed(), truncated=truncated, language=language
            )

        sent = await terminate_process(process, kill_grace)
        if cancel_wait is not None and cancel_wait in done:
            return ExecutionResult(
                "", EXIT_CANCELLED, ExecutionStatus.CANCELLED, elapsed(),
                language=language, signal=sent,
            )
        return ExecutionResult(
            f"Execution timed out after {timeout}s",
            None,
            ExecutionStatus.TIMEOUT,
            elapsed(),
            language=language,
            signal=sent,
        )
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()
        if process.returncode is None:
            await terminate_process(process, kill_grace)
        if not communicate.done():
            communicate.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await communicate
