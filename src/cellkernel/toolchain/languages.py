"""Per-language execution specs.

Every supported language is one of two variants:

- InterpretedLanguage: source is wrapped in a setup/epilogue template,
  written to a script file and handed to an interpreter.
- CompiledLanguage: source is compiled to a binary in the workspace and the
  binary is executed.

Runners dispatch on the variant type; nothing else branches on language
names.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from string import Template

from cellkernel.errors import UnsupportedLanguageError

# Placeholders available to setup/epilogue templates:
#   $workspace  - workspace path as a string literal of the target language
#   $run_id     - per-invocation identifier (namespaces saved figures)
#   $bridge     - snippet from the shared-memory bridge (primary language only)


def _python_literal(value: str) -> str:
    return repr(value)


def _json_literal(value: str) -> str:
    return json.dumps(value)


def _julia_literal(value: str) -> str:
    # "$" interpolates inside Julia strings
    return json.dumps(value).replace("$", "\\$")


@dataclass(frozen=True)
class LanguageSpec:
    """Configuration shared by both runner variants.

    Attributes:
        name: Canonical language tag.
        display_name: Human-readable name used in messages.
        suffix: Extension for the temporary source file.
        candidates: Absolute install locations probed in order.
        commands: Bare command names looked up on PATH after candidates.
        install_hint: Message surfaced when no toolchain is found.
        aliases: Alternative tags that map to this spec.
        toolchain: Language whose toolchain runs this one (defaults to name).
    """

    name: str
    display_name: str
    suffix: str
    candidates: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    install_hint: str = ""
    aliases: tuple[str, ...] = ()
    toolchain: str | None = None

    @property
    def toolchain_language(self) -> str:
        return self.toolchain or self.name


@dataclass(frozen=True)
class InterpretedLanguage(LanguageSpec):
    """An interpreted language.

    Attributes:
        args: Interpreter arguments placed before the script path.
        setup: Template prepended to the cell source.
        epilogue: Template appended to the cell source.
        literal: Renders the workspace path as a string literal.
        transform: Optional rewrite of the cell source into the program
            actually run (used by SQL, which runs through Python).
        accepts_bridge: Whether the bridge snippet may be spliced into setup.
    """

    args: tuple[str, ...] = ()
    setup: str = ""
    epilogue: str = ""
    literal: Callable[[str], str] = _json_literal
    transform: Callable[[str, Path], str] | None = None
    accepts_bridge: bool = False

    def render(self, source: str, workspace: Path, run_id: str, bridge: str = "") -> str:
        """Build the full program text for one run."""
        body = self.transform(source, workspace) if self.transform else source
        values = {
            "workspace": self.literal(str(workspace)),
            "run_id": run_id,
            "bridge": bridge if self.accepts_bridge else "",
        }
        setup = Template(self.setup).safe_substitute(values)
        epilogue = Template(self.epilogue).safe_substitute(values)
        parts = [part for part in (setup, body, epilogue) if part]
        return "\n".join(parts) + "\n"

    def command(self, interpreter: str, script: Path) -> list[str]:
        return [interpreter, *self.args, str(script)]


@dataclass(frozen=True)
class CompiledLanguage(LanguageSpec):
    """A compiled language.

    Attributes:
        compile_args: Compiler flags placed before the source path.
        side_suffixes: Extra artifacts next to the binary that must be removed.
    """

    compile_args: tuple[str, ...] = ()
    side_suffixes: tuple[str, ...] = field(default=(".pdb", ".dSYM", ".o"))

    def compile_command(self, compiler: str, source: Path, binary: Path) -> list[str]:
        return [compiler, *self.compile_args, str(source), "-o", str(binary)]

    def binary_path(self, source: Path) -> Path:
        suffix = ".exe" if sys.platform == "win32" else ""
        return source.with_suffix(suffix)

    def side_files(self, binary: Path) -> list[Path]:
        stem = binary.with_suffix("")
        return [stem.with_name(stem.name + s) for s in self.side_suffixes]


# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------

PYTHON_SETUP = """\
import os
import sys
os.chdir($workspace)

$bridge

try:
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
    plt.ioff()
except Exception:
    pass
"""

PYTHON_EPILOGUE = """\
try:
    import matplotlib.pyplot as plt
    for _ck_i, _ck_num in enumerate(plt.get_fignums()):
        _ck_name = f'output_${run_id}_{_ck_i}.png'
        plt.figure(_ck_num).savefig(_ck_name, dpi=100, bbox_inches='tight')
        print(f'[IMAGE:{_ck_name}]')
    plt.close('all')
except Exception:
    pass
"""

R_SETUP = """\
setwd($workspace)

.ck_plot_counter <- 0
.ck_save_plot <- function() {
    filename <- paste0("output_${run_id}_", .ck_plot_counter, ".png")
    .ck_plot_counter <<- .ck_plot_counter + 1
    dev.copy(png, filename, width = 800, height = 600)
    invisible(dev.off())
    cat(paste0("[IMAGE:", filename, "]\\n"))
}
"""

R_EPILOGUE = """\
tryCatch({
    while (dev.cur() > 1) {
        .ck_save_plot()
        invisible(dev.off())
    }
}, error = function(e) {})
if (file.exists("Rplots.pdf")) invisible(file.remove("Rplots.pdf"))
"""

JULIA_SETUP = """\
cd($workspace)
"""


def render_sql(source: str, workspace: Path) -> str:
    """Turn a SQL cell into a Python sqlite3 script.

    A ``-- connect to: sqlite:///<path>`` comment selects the database;
    otherwise ``notebook.db`` in the workspace is used. Comment lines are
    dropped before execution.
    """
    db_path = str(workspace / "notebook.db")
    statements: list[str] = []
    for line in source.splitlines():
        stripped = line.strip()
        if "connect to:" in stripped.lower() and "sqlite:///" in stripped:
            db_path = stripped.split("sqlite:///", 1)[1].strip()
            continue
        if stripped.startswith("--"):
            continue
        statements.append(line)
    sql = "\n".join(statements)

    return f"""\
import sqlite3

conn = sqlite3.connect({db_path!r})
cursor = conn.cursor()
sql = {sql!r}

try:
    for statement in sql.strip().split(';'):
        statement = statement.strip()
        if statement:
            cursor.execute(statement)

    if cursor.description:
        columns = [desc[0] for desc in cursor.description]
        rows = cursor.fetchall()
        header = ' | '.join(columns)
        print(header)
        print('-' * (len(header) + 10))
        for row in rows:
            print(' | '.join(str(value) for value in row))
        print(f'\\n{{len(rows)}} rows returned')
    else:
        conn.commit()
        print(f'Query executed successfully. Rows affected: {{cursor.rowcount}}')
except sqlite3.Error as e:
    print(f'SQL Error: {{e}}', file=sys.stderr)
    sys.exit(1)
finally:
    conn.close()
"""


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

_BREW = "/opt/homebrew/bin"
_LOCAL = "/usr/local/bin"
_USR = "/usr/bin"

PYTHON = InterpretedLanguage(
    name="python",
    display_name="Python",
    suffix=".py",
    candidates=(f"{_BREW}/python3", f"{_LOCAL}/python3", f"{_USR}/python3"),
    commands=("python3", "python"),
    install_hint="Python is not installed. Install it from https://www.python.org/downloads/",
    aliases=("py", "python3", "procedure"),
    args=("-u",),
    setup=PYTHON_SETUP,
    epilogue=PYTHON_EPILOGUE,
    literal=_python_literal,
    accepts_bridge=True,
)

SQL = InterpretedLanguage(
    name="sql",
    display_name="SQL",
    suffix=".py",
    install_hint="SQL cells run through Python. Install it from https://www.python.org/downloads/",
    aliases=("sqlite",),
    toolchain="python",
    args=("-u",),
    setup="import sys\n",
    literal=_python_literal,
    transform=render_sql,
)

R = InterpretedLanguage(
    name="r",
    display_name="R",
    suffix=".R",
    candidates=(f"{_BREW}/Rscript", f"{_LOCAL}/Rscript", f"{_USR}/Rscript"),
    commands=("Rscript",),
    install_hint="R is not installed. Please install R from https://cran.r-project.org/",
    aliases=("rscript",),
    args=("--vanilla",),
    setup=R_SETUP,
    epilogue=R_EPILOGUE,
)

JULIA = InterpretedLanguage(
    name="julia",
    display_name="Julia",
    suffix=".jl",
    candidates=(
        "/Applications/Julia-1.10.app/Contents/Resources/julia/bin/julia",
        "/Applications/Julia-1.9.app/Contents/Resources/julia/bin/julia",
        f"{_BREW}/julia",
        f"{_LOCAL}/julia",
        f"{_USR}/julia",
    ),
    commands=("julia",),
    install_hint="Julia is not installed. Install from https://julialang.org/downloads/",
    aliases=("jl",),
    setup=JULIA_SETUP,
    literal=_julia_literal,
)

GO = InterpretedLanguage(
    name="go",
    display_name="Go",
    suffix=".go",
    candidates=(f"{_BREW}/go", f"{_LOCAL}/go/bin/go", f"{_LOCAL}/go", f"{_USR}/go"),
    commands=("go",),
    install_hint="Go is not installed. Install it from https://go.dev/dl/",
    aliases=("golang",),
    args=("run",),
)

RUST = CompiledLanguage(
    name="rust",
    display_name="Rust",
    suffix=".rs",
    candidates=(
        str(Path.home() / ".cargo" / "bin" / "rustc"),
        f"{_BREW}/rustc",
        f"{_LOCAL}/bin/rustc",
        f"{_LOCAL}/rustc",
        f"{_USR}/rustc",
    ),
    commands=("rustc",),
    install_hint="Rust is not installed. Install it with rustup from https://rustup.rs/",
    aliases=("rs",),
)

CPP = CompiledLanguage(
    name="cpp",
    display_name="C++",
    suffix=".cpp",
    candidates=(f"{_USR}/clang++", f"{_BREW}/clang++", f"{_LOCAL}/clang++", f"{_USR}/g++"),
    commands=("clang++", "g++"),
    install_hint="No C++ compiler found. Install clang or g++ (macOS: xcode-select --install)",
    aliases=("c++", "cxx"),
    compile_args=("-std=c++17",),
)

C = CompiledLanguage(
    name="c",
    display_name="C",
    suffix=".c",
    candidates=(f"{_USR}/clang", f"{_BREW}/clang", f"{_LOCAL}/clang", f"{_USR}/gcc"),
    commands=("clang", "gcc", "cc"),
    install_hint="No C compiler found. Install clang or gcc (macOS: xcode-select --install)",
)

OBJC = CompiledLanguage(
    name="objc",
    display_name="Objective-C",
    suffix=".m",
    candidates=(f"{_USR}/clang",),
    commands=("clang",),
    install_hint="Objective-C needs clang with Foundation (macOS: xcode-select --install)",
    aliases=("objective-c", "objectivec"),
    compile_args=("-framework", "Foundation"),
)

LANGUAGES: dict[str, LanguageSpec] = {
    spec.name: spec for spec in (PYTHON, SQL, R, JULIA, GO, RUST, CPP, C, OBJC)
}

_ALIASES: dict[str, str] = {
    alias: spec.name for spec in LANGUAGES.values() for alias in spec.aliases
}


def normalize_language(tag: str) -> str:
    """Map a language tag or alias to its canonical name."""
    key = tag.strip().lower()
    return _ALIASES.get(key, key)


def get_language(tag: str) -> LanguageSpec:
    """Look up the spec for a language tag.

    Raises:
        UnsupportedLanguageError: If the tag is unknown.
    """
    spec = LANGUAGES.get(normalize_language(tag))
    if spec is None:
        raise UnsupportedLanguageError(tag)
    return spec


def supported_languages() -> list[str]:
    return sorted(LANGUAGES)
