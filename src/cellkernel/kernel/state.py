"""Session-wide kernel status and the global execution counter."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from cellkernel.logging import get_logger

if TYPE_CHECKING:
    from cellkernel.kernel.cell import Cell

log = get_logger("kernel")

DEFAULT_RESTART_DELAY = 1.0


class KernelStatus(Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    RESTARTED = "Restarted"


@dataclass(frozen=True)
class KernelState:
    """Point-in-time copy of the tracker's state."""

    status: KernelStatus
    execution_count: int
    running: int


StatusListener = Callable[[KernelStatus], None]


class KernelStateTracker:
    """Owns kernel status and the execution counter.

    Ordinals come from one counter shared by every cell in the session, so
    they are unique and strictly increasing until an explicit restart.
    Status is Running while any dispatch is in flight and Idle otherwise;
    Restarted is transient and reverts to Idle after restart_delay.
    """

    def __init__(self, restart_delay: float = DEFAULT_RESTART_DELAY) -> None:
        self.restart_delay = restart_delay
        self._lock = threading.Lock()
        self._count = 0
        self._running = 0
        self._status = KernelStatus.IDLE
        self._listeners: list[StatusListener] = []
        self._revert: asyncio.TimerHandle | None = None

    @property
    def status(self) -> KernelStatus:
        return self._status

    @property
    def execution_count(self) -> int:
        return self._count

    @property
    def running(self) -> int:
        return self._running

    def snapshot(self) -> KernelState:
        with self._lock:
            return KernelState(self._status, self._count, self._running)

    def on_status_change(self, callback: StatusListener) -> Callable[[], None]:
        """Register a status listener.

        Returns:
            Function that unregisters the listener.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_status(self, status: KernelStatus) -> None:
        if status is self._status:
            return
        self._status = status
        log.debug("Kernel status: %s", status.value)
        for callback in list(self._listeners):
            try:
                callback(status)
            except Exception as e:
                log.warning("Kernel status listener failed: %s", e)

    def begin(self) -> None:
        """Mark a dispatch as started."""
        self._cancel_revert()
        with self._lock:
            self._running += 1
        self._set_status(KernelStatus.RUNNING)

    def complete(self, stamp: bool = True) -> int | None:
        """Mark a dispatch as finished.

        Args:
            stamp: Whether the run counts as a completed execution.

        Returns:
            The ordinal to stamp on the cell, or None when stamp is False.
        """
        with self._lock:
            self._running = max(0, self._running - 1)
            ordinal = None
            if stamp:
                self._count += 1
                ordinal = self._count
            idle = self._running == 0
        if idle and self._status is KernelStatus.RUNNING:
            self._set_status(KernelStatus.IDLE)
        return ordinal

    def restart(self, cells: Iterable[Cell] = ()) -> None:
        """Clear every cell, zero the counter and enter Restarted.

        Status reverts to Idle after restart_delay on the running loop.
        """
        for cell in cells:
            cell.reset()
        with self._lock:
            self._count = 0
            self._running = 0
        self._cancel_revert()
        self._set_status(KernelStatus.RESTARTED)
        log.info("Kernel restarted")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._set_status(KernelStatus.IDLE)
            return
        self._revert = loop.call_later(self.restart_delay, self._finish_restart)

    def _finish_restart(self) -> None:
        self._revert = None
        if self._status is KernelStatus.RESTARTED:
            self._set_status(KernelStatus.IDLE)

    def _cancel_revert(self) -> None:
        if self._revert is not None:
            self._revert.cancel()
            self._revert = None
