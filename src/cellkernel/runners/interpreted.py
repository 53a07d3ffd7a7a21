"""Runner for interpreted languages (Python, R, Julia, Go, SQL)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from cellkernel.logging import get_logger
from cellkernel.runners.base import BaseRunner, PreparedRun, normalize_quotes, remove_artifacts

if TYPE_CHECKING:
    from cellkernel.config.schema import ExecutionConfig
    from cellkernel.runners.result import ExecutionRequest
    from cellkernel.toolchain.languages import InterpretedLanguage

log = get_logger("runner.interpreted")


class InterpretedRunner(BaseRunner):
    """Wraps cell source in the language's setup/epilogue and interprets it.

    The combined program is written to a uniquely named script in the
    workspace, run with the workspace as working directory, and deleted on
    every exit path.
    """

    spec: InterpretedLanguage

    def __init__(
        self,
        spec: InterpretedLanguage,
        executable: str,
        config: ExecutionConfig | None = None,
    ) -> None:
        super().__init__(spec, executable, config)

    def render(self, request: ExecutionRequest) -> str:
        """Full program text for a request."""
        return self.spec.render(
            normalize_quotes(request.source),
            request.workspace_root,
            request.run_id,
            bridge=request.bridge,
        )

    @asynccontextmanager
    async def prepared(self, request: ExecutionRequest) -> AsyncIterator[PreparedRun]:
        script = request.workspace_root / f"cell_{request.run_id}{self.spec.suffix}"
        try:
            await self._write(script, self.render(request))
            log.debug("Wrote %s for cell %s", script.name, request.cell_id)
            yield PreparedRun(
                command=self.spec.command(self.executable, script),
                cwd=request.workspace_root,
                artifacts=[script],
            )
        finally:
            remove_artifacts([script])
