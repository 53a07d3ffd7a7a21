"""Language runners.

Two variants, selected by the language spec's type:
- InterpretedRunner for InterpretedLanguage specs
- CompiledRunner for CompiledLanguage specs
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cellkernel.runners.base import BaseRunner, PreparedRun, Runner
from cellkernel.runners.compiled import CompiledRunner
from cellkernel.runners.interpreted import InterpretedRunner
from cellkernel.runners.result import ExecutionRequest, ExecutionResult, ExecutionStatus
from cellkernel.toolchain.languages import CompiledLanguage, InterpretedLanguage

if TYPE_CHECKING:
    from cellkernel.config.schema import ExecutionConfig
    from cellkernel.toolchain.languages import LanguageSpec


def create_runner(
    spec: LanguageSpec,
    executable: str,
    config: ExecutionConfig | None = None,
) -> BaseRunner:
    """Build the runner variant for a language spec."""
    if isinstance(spec, CompiledLanguage):
        return CompiledRunner(spec, executable, config)
    if isinstance(spec, InterpretedLanguage):
        return InterpretedRunner(spec, executable, config)
    raise TypeError(f"No runner for spec type {type(spec).__name__}")


__all__ = [
    "BaseRunner",
    "CompiledRunner",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "InterpretedRunner",
    "PreparedRun",
    "Runner",
    "create_runner",
]
