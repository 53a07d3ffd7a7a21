"""Bridge snippets spliced into the primary language's preamble."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from cellkernel.output import STRUCTURED_KEY

PRIMARY_LANGUAGE = "python"

# Helper available to every Python cell: hand a stored table back by path
PYTHON_HANDOFF = f"""\
def handoff(path):
    import json as _ck_json
    print(_ck_json.dumps({{"{STRUCTURED_KEY}": True, "path": str(path)}}))
"""


@runtime_checkable
class SharedMemoryBridge(Protocol):
    """Supplies source injected before cell code of the primary language."""

    def bridge_snippet(self, language: str) -> str:
        """Return the snippet for a language, or an empty string."""
        ...


class StaticBridge:
    """Bridge backed by a fixed mapping of language to snippet."""

    def __init__(self, snippets: Mapping[str, str] | None = None) -> None:
        self._snippets = dict(snippets) if snippets is not None else {PRIMARY_LANGUAGE: PYTHON_HANDOFF}

    def bridge_snippet(self, language: str) -> str:
        return self._snippets.get(language, "")
