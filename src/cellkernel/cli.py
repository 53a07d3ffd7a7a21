"""Command-line interface for cellkernel.

Usage:
    python -m cellkernel run script.rs
    python -m cellkernel notebook .cellkernel/notebooks/sales.yaml --tag setup --save
    python -m cellkernel languages
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cellkernel import __version__
from cellkernel.config import load_config
from cellkernel.kernel import Cell, ExecutionEngine
from cellkernel.logging import get_logger, setup_logging
from cellkernel.runners.result import ExecutionStatus
from cellkernel.storage import export_ipynb, load_notebook, save_notebook
from cellkernel.toolchain import ToolchainResolver
from cellkernel.toolchain.languages import get_language, supported_languages
from cellkernel.workspace import Workspace

if TYPE_CHECKING:
    from cellkernel.config.schema import Config
    from cellkernel.output import ClassifiedOutput

log = get_logger("cli")

console = Console()
err_console = Console(stderr=True)

# Source file extension -> language tag
EXTENSIONS = {
    ".py": "python",
    ".sql": "sql",
    ".r": "r",
    ".jl": "julia",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".c": "c",
    ".m": "objc",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cellkernel",
        description="Run notebook cells and source files against local toolchains",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (can be repeated)",
    )
    parser.add_argument(
        "--project",
        type=Path,
        help="Project directory whose .cellkernel/config.yaml applies (default: cwd)",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help="Workspace directory for run artifacts",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operating mode")

    run_parser = subparsers.add_parser("run", help="Run one source file as a cell")
    run_parser.add_argument("file", type=Path, help="Source file")
    run_parser.add_argument(
        "-l", "--language",
        help="Language tag (default: inferred from the file extension)",
    )

    notebook_parser = subparsers.add_parser("notebook", help="Run a saved notebook")
    notebook_parser.add_argument("path", type=Path, help="Notebook YAML file")
    notebook_parser.add_argument("--tag", help="Only run cells carrying this tag")
    notebook_parser.add_argument(
        "--save",
        action="store_true",
        help="Write outputs and execution ordinals back to the notebook",
    )
    notebook_parser.add_argument(
        "--export",
        type=Path,
        help="Also write a Jupyter .ipynb copy to this path",
    )

    subparsers.add_parser("languages", help="List languages and resolved toolchains")

    return parser


def infer_language(path: Path) -> str | None:
    return EXTENSIONS.get(path.suffix.lower())


def format_output(output: ClassifiedOutput) -> str:
    """Plain-text rendering of a classified output for the terminal."""
    lines = [output.text] if output.text else []
    lines.extend(f"[image] {image}" for image in output.images)
    if output.structured_ref is not None:
        lines.append(f"[table] {output.structured_ref}")
    if output.is_error and output.exit_code is not None:
        lines.append(f"[exit {output.exit_code}]")
    return "\n".join(lines)


def print_output(output: ClassifiedOutput) -> None:
    """Print a cell's output; failures go to stderr in red."""
    rendered = format_output(output)
    if not rendered:
        return
    # Program output is printed verbatim, never as markup
    if output.is_error:
        err_console.print(rendered, style="red", markup=False, highlight=False, soft_wrap=True)
    else:
        console.print(rendered, markup=False, highlight=False, soft_wrap=True)


def exit_status(output: ClassifiedOutput) -> int:
    """Process exit status for a run: the program's own code on a runtime failure."""
    if not output.is_error:
        return 0
    code = output.exit_code
    if output.status is ExecutionStatus.RUNTIME_FAILURE and code is not None and code > 0:
        return code
    return 1


def _engine(config: Config, workspace: Path | None) -> ExecutionEngine:
    root = workspace or config.workspace.root
    return ExecutionEngine(Workspace(root), config=config)


async def run_file(config: Config, path: Path, language: str | None, workspace: Path | None) -> int:
    language = language or infer_language(path)
    if language is None:
        err_console.print(
            f"[red]Cannot infer a language for {escape(path.name)}; pass --language[/red]"
        )
        return 2
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as e:
        err_console.print(f"[red]Cannot read {escape(str(path))}: {escape(str(e))}[/red]")
        return 2

    engine = _engine(config, workspace)
    try:
        output = await engine.run_cell(Cell(source, language=language))
    finally:
        engine.close()
    print_output(output)
    return exit_status(output)


async def run_notebook(
    config: Config,
    path: Path,
    tag: str | None,
    save: bool,
    export: Path | None,
    workspace: Path | None,
) -> int:
    notebook = load_notebook(path)
    if notebook is None:
        err_console.print(f"[red]Cannot load notebook {escape(str(path))}[/red]")
        return 2

    engine = _engine(config, workspace)
    cells = notebook.cells_with_tag(tag) if tag else notebook.code_cells()
    log.info("Running %d cell(s) from %s", len(cells), notebook.name)

    failures = 0
    try:
        for cell in cells:
            output = await engine.run_cell(cell, notebook)
            ordinal = cell.execution_ordinal if cell.execution_ordinal is not None else " "
            console.print(
                f"[bold]{escape(f'In [{ordinal}]')}[/bold] [dim]({cell.language})[/dim]",
                highlight=False,
            )
            print_output(output)
            if output.is_error:
                failures += 1
    finally:
        engine.close()

    if save:
        save_notebook(notebook, path)
    if export is not None:
        export_ipynb(notebook, export)
    return 1 if failures else 0


def list_languages(config: Config) -> int:
    resolver = ToolchainResolver(config=config.toolchains)
    table = Table(title="Languages")
    table.add_column("Language", style="bold")
    table.add_column("Tag")
    table.add_column("Toolchain")

    for name in supported_languages():
        spec = get_language(name)
        resolution = resolver.resolve(spec)
        where = escape(str(resolution.path)) if resolution.found else "[dim]not found[/dim]"
        table.add_row(spec.display_name, name, where)

    console.print(table)
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    # Load config before logging so we can use config.logging settings
    config = load_config(project_root=str(parsed.project or Path.cwd()))
    if parsed.verbose:
        config.logging.verbose = min(4, 2 + parsed.verbose)
    setup_logging(config.logging)

    if parsed.mode == "run":
        return asyncio.run(run_file(config, parsed.file, parsed.language, parsed.workspace))
    elif parsed.mode == "notebook":
        return asyncio.run(
            run_notebook(
                config, parsed.path, parsed.tag, parsed.save, parsed.export, parsed.workspace
            )
        )
    elif parsed.mode == "languages":
        return list_languages(config)
    else:
        parser.print_help()
        return 1


def main() -> None:
    sys.exit(run_cli(sys.argv[1:]))
