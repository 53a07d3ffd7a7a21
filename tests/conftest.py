"""Root pytest configuration for all tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from cellkernel.config import Config, ExecutionConfig, reset_config
from cellkernel.kernel import ExecutionEngine, KernelStateTracker
from cellkernel.toolchain import ToolchainResolver
from cellkernel.workspace import Workspace
from tests.utils import FAKE_COMPILER, FAKE_INTERPRETER, write_tool

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Keep the global config away from the developer's own config files."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path_factory.mktemp("xdg-config")))
    monkeypatch.delenv("CK_LOG", raising=False)
    monkeypatch.delenv("CK_WORKSPACE", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> Config:
    """Config with short delays so timing tests stay fast."""
    return Config(
        execution=ExecutionConfig(
            timeout=20.0,
            debounce_delay=0.05,
            flush_interval=0.05,
            restart_delay=0.05,
            kill_grace=1.0,
        )
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path / "workspace")


@pytest.fixture
def fake_bin(tmp_path: Path) -> Path:
    return tmp_path / "bin"


@pytest.fixture
def fake_compiler(fake_bin: Path) -> Path:
    return write_tool(fake_bin, "fakecc", FAKE_COMPILER)


@pytest.fixture
def fake_interpreter(fake_bin: Path) -> Path:
    return write_tool(fake_bin, "fakeinterp", FAKE_INTERPRETER)


@pytest.fixture
def resolver(fake_compiler: Path, fake_interpreter: Path) -> ToolchainResolver:
    """Resolver with the real Python and fake tools for everything else."""
    resolver = ToolchainResolver()
    resolver.set_override("python", sys.executable)
    for language in ("rust", "cpp", "c", "objc"):
        resolver.set_override(language, str(fake_compiler))
    for language in ("r", "julia", "go"):
        resolver.set_override(language, str(fake_interpreter))
    return resolver


@pytest.fixture
def engine(workspace: Workspace, resolver: ToolchainResolver, config: Config) -> ExecutionEngine:
    return ExecutionEngine(
        workspace,
        resolver=resolver,
        tracker=KernelStateTracker(config.execution.restart_delay),
        config=config,
    )
