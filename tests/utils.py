"""Shared test utilities for cellkernel tests."""

from __future__ import annotations

import asyncio
import stat
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

from cellkernel.streaming import StreamEvent

# Stands in for rustc/clang/gcc: the last three arguments are "<src> -o <bin>".
# Sources containing SYNTAX_ERROR fail with a diagnostic on stderr; otherwise
# the "binary" is a script echoing every "PRINT: " line of the source.
FAKE_COMPILER = r"""#!/bin/sh
while [ $# -gt 2 ]; do src="$1"; shift; done
out="$2"
if grep -q SYNTAX_ERROR "$src"; then
    echo "$src:1:1: error: expected expression" >&2
    exit 1
fi
echo "compiler noise on stdout"
{
    echo '#!/bin/sh'
    sed -n 's/.*PRINT: \(.*\)$/echo "\1"/p' "$src"
} > "$out"
chmod +x "$out"
"""

# Stands in for Rscript/julia/go: the last argument is the script. Prints
# every "ECHO: " line and exits with the code on an "EXIT: " line.
FAKE_INTERPRETER = r"""#!/bin/sh
for arg in "$@"; do script="$arg"; done
sed -n 's/.*ECHO: //p' "$script"
code=$(sed -n 's/.*EXIT: //p' "$script" | head -n 1)
exit ${code:-0}
"""


def write_tool(directory: Path, name: str, body: str) -> Path:
    """Write an executable script and return its path.

    Args:
        directory: Directory to create the script in (created if missing)
        name: File name
        body: Script text, including the shebang line

    Returns:
        Path to the script
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def write_compiler(directory: Path, name: str, program: str) -> Path:
    """Write a fake compiler whose output binary is always ``program``.

    Like FAKE_COMPILER it expects "<src> -o <bin>" as the last arguments.
    """
    body = (
        "#!/bin/sh\n"
        'while [ $# -gt 2 ]; do shift; done\n'
        'out="$2"\n'
        "cat > \"$out\" <<'PROGRAM'\n"
        f"{program.rstrip()}\n"
        "PROGRAM\n"
        'chmod +x "$out"\n'
    )
    return write_tool(directory, name, body)


def cell_artifacts(root: Path) -> list[Path]:
    """Per-run temporary files left in a workspace."""
    return sorted(root.glob("cell_*"))


class ScriptedBackend:
    """Streaming backend that replays canned events.

    Each item is a StreamEvent to yield, a float to sleep for, or an
    Exception to raise. Records whether the generator was closed.
    """

    def __init__(self, items: Iterable[StreamEvent | float | Exception]) -> None:
        self.items = list(items)
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def stream(self, source: str, language: str) -> AsyncIterator[StreamEvent]:
        self.calls.append((source, language))
        try:
            for item in self.items:
                if isinstance(item, StreamEvent):
                    yield item
                elif isinstance(item, Exception):
                    raise item
                else:
                    await asyncio.sleep(item)
        finally:
            self.closed = True
