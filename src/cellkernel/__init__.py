"""cellkernel: local multi-language cell execution engine."""

__version__ = "0.1.0"

# Public API
from cellkernel.analysis import AnalysisResult, analyze
from cellkernel.bridge import SharedMemoryBridge, StaticBridge
from cellkernel.config import Config, get_config, load_config
from cellkernel.coordinator import AutoRunCoordinator
from cellkernel.errors import (
    CellKernelError,
    ToolchainNotFoundError,
    UnsupportedLanguageError,
    WorkspaceError,
)
from cellkernel.kernel import (
    Cell,
    CellKind,
    ExecutionEngine,
    KernelState,
    KernelStateTracker,
    KernelStatus,
    Notebook,
)
from cellkernel.output import ClassifiedOutput, OutputKind, OutputProtocolParser
from cellkernel.playground import Playground
from cellkernel.runners import ExecutionRequest, ExecutionResult, ExecutionStatus
from cellkernel.storage import export_ipynb, load_notebook, save_notebook
from cellkernel.streaming import (
    StreamConsumer,
    StreamEvent,
    StreamingBackend,
    StreamKind,
    StreamOutcome,
    SubprocessStreamingBackend,
)
from cellkernel.toolchain import EnvironmentManager, ToolchainResolution, ToolchainResolver
from cellkernel.workspace import Workspace

__all__ = [
    # Engine
    "ExecutionEngine",
    "Playground",
    "AutoRunCoordinator",
    # Notebook model
    "Cell",
    "CellKind",
    "Notebook",
    "KernelState",
    "KernelStateTracker",
    "KernelStatus",
    # Execution
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "ClassifiedOutput",
    "OutputKind",
    "OutputProtocolParser",
    # Streaming
    "StreamConsumer",
    "StreamEvent",
    "StreamKind",
    "StreamOutcome",
    "StreamingBackend",
    "SubprocessStreamingBackend",
    # Collaborators
    "EnvironmentManager",
    "SharedMemoryBridge",
    "StaticBridge",
    "ToolchainResolution",
    "ToolchainResolver",
    "Workspace",
    # Analysis
    "AnalysisResult",
    "analyze",
    # Persistence
    "export_ipynb",
    "load_notebook",
    "save_notebook",
    # Config
    "Config",
    "get_config",
    "load_config",
    # Errors
    "CellKernelError",
    "ToolchainNotFoundError",
    "UnsupportedLanguageError",
    "WorkspaceError",
]
