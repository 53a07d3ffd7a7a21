"""Notebook kernel: cell model, state tracking and the execution engine."""

from cellkernel.kernel.cell import Cell, CellKind, Notebook
from cellkernel.kernel.engine import ExecutionEngine
from cellkernel.kernel.state import KernelState, KernelStateTracker, KernelStatus

__all__ = [
    "Cell",
    "CellKind",
    "ExecutionEngine",
    "KernelState",
    "KernelStateTracker",
    "KernelStatus",
    "Notebook",
]
