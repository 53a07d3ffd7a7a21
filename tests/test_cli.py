"""Tests for the command-line interface."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest
import yaml
from rich.console import Console

import cellkernel.cli as cli_module
from cellkernel import __version__
from cellkernel.cli import create_parser, exit_status, format_output, infer_language, run_cli
from cellkernel.kernel import Notebook
from cellkernel.logging import reset_logging
from cellkernel.output import ClassifiedOutput, OutputKind
from cellkernel.runners.result import ExecutionStatus
from cellkernel.storage import load_notebook, save_notebook


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _wide_consoles(monkeypatch: pytest.MonkeyPatch) -> None:
    # Rich wraps at 80 columns when not attached to a terminal
    monkeypatch.setattr(cli_module, "console", Console(width=400))
    monkeypatch.setattr(cli_module, "err_console", Console(stderr=True, width=400))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Project directory whose config pins python to the test interpreter."""
    root = tmp_path / "project"
    config_dir = root / ".cellkernel"
    config_dir.mkdir(parents=True)
    (config_dir / "config.yaml").write_text(
        yaml.safe_dump({"toolchains": {"paths": {"python": sys.executable}}})
    )
    return root


def cli(project: Path, *args: str) -> int:
    return run_cli(["--project", str(project), "--workspace", str(project / "ws"), *args])


class TestParser:
    def test_no_mode_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli([]) == 1
        assert "usage: cellkernel" in capsys.readouterr().out

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            create_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_verbose_counts(self) -> None:
        parsed = create_parser().parse_args(["-vv", "languages"])
        assert parsed.verbose == 2
        assert parsed.mode == "languages"


class TestHelpers:
    def test_infer_language(self) -> None:
        assert infer_language(Path("main.RS")) == "rust"
        assert infer_language(Path("query.sql")) == "sql"
        assert infer_language(Path("notes.txt")) is None

    def test_format_output(self, tmp_path: Path) -> None:
        image = tmp_path / "plot.png"
        output = ClassifiedOutput(OutputKind.TEXT_WITH_IMAGES, "done", (image,), exit_code=0)
        assert format_output(output) == f"done\n[image] {image}"

        failure = ClassifiedOutput(
            OutputKind.TEXT,
            "boom",
            is_error=True,
            exit_code=3,
            status=ExecutionStatus.RUNTIME_FAILURE,
        )
        assert format_output(failure) == "boom\n[exit 3]"

    def test_format_structured(self) -> None:
        output = ClassifiedOutput(OutputKind.STRUCTURED_HANDOFF, structured_ref="/tmp/t.arrow")
        assert format_output(output) == "[table] /tmp/t.arrow"

    def test_exit_status_follows_program_only_on_runtime_failure(self) -> None:
        def failed(status: ExecutionStatus, code: int | None) -> ClassifiedOutput:
            return ClassifiedOutput(OutputKind.TEXT, is_error=True, exit_code=code, status=status)

        assert exit_status(ClassifiedOutput(OutputKind.TEXT, exit_code=0)) == 0
        assert exit_status(failed(ExecutionStatus.RUNTIME_FAILURE, 3)) == 3
        assert exit_status(failed(ExecutionStatus.RUNTIME_FAILURE, -9)) == 1
        assert exit_status(failed(ExecutionStatus.TOOLCHAIN_NOT_FOUND, 127)) == 1
        assert exit_status(failed(ExecutionStatus.COMPILE_FAILURE, 1)) == 1
        assert exit_status(failed(ExecutionStatus.IO_FAILURE, None)) == 1


@pytest.mark.skipif(os.name != "posix", reason="relies on POSIX process groups")
class TestRunFile:
    def test_runs_python_file(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        script = project / "hello.py"
        script.write_text("print('hello from cli')")

        assert cli(project, "run", str(script)) == 0
        assert "hello from cli" in capsys.readouterr().out

    def test_failure_exit_code(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        script = project / "fail.py"
        script.write_text("import sys\nprint('bad input')\nsys.exit(3)")

        assert cli(project, "run", str(script)) == 3
        assert "bad input" in capsys.readouterr().err

    def test_explicit_language(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        script = project / "snippet.txt"
        script.write_text("print(6 * 7)")

        assert cli(project, "run", "--language", "python", str(script)) == 0
        assert "42" in capsys.readouterr().out

    def test_missing_toolchain_exits_one(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        script = project / "hello.cob"
        script.write_text("DISPLAY 'HI'.")

        assert cli(project, "run", "--language", "cobol", str(script)) == 1
        assert "Unsupported language" in capsys.readouterr().err

    def test_unknown_extension(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        script = project / "notes.txt"
        script.write_text("hi")
        assert cli(project, "run", str(script)) == 2
        assert "--language" in capsys.readouterr().err

    def test_missing_file(self, project: Path) -> None:
        assert cli(project, "run", str(project / "absent.py")) == 2


@pytest.mark.skipif(os.name != "posix", reason="relies on POSIX process groups")
class TestRunNotebook:
    def test_runs_and_saves(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        notebook = Notebook("cli demo")
        notebook.add_cell(source="print('one')")
        notebook.add_cell(source="print('two')", tags={"later"})
        path = save_notebook(notebook, project / "demo.yaml")
        export = project / "demo.ipynb"

        assert cli(project, "notebook", str(path), "--save", "--export", str(export)) == 0
        out = capsys.readouterr().out
        assert "In [1] (python)\none" in out
        assert "In [2] (python)\ntwo" in out

        saved = load_notebook(path)
        assert saved is not None
        assert [c.execution_ordinal for c in saved.cells] == [1, 2]
        assert json.loads(export.read_text())["cells"][1]["execution_count"] == 2

    def test_tag_filter(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        notebook = Notebook("tagged")
        notebook.add_cell(source="print('skipped')")
        notebook.add_cell(source="print('picked')", tags={"later"})
        path = save_notebook(notebook, project / "tagged.yaml")

        assert cli(project, "notebook", str(path), "--tag", "later") == 0
        out = capsys.readouterr().out
        assert "picked" in out
        assert "skipped" not in out

    def test_failing_cell(self, project: Path) -> None:
        notebook = Notebook("broken")
        notebook.add_cell(source="raise SystemExit(1)")
        path = save_notebook(notebook, project / "broken.yaml")
        assert cli(project, "notebook", str(path)) == 1

    def test_missing_notebook(self, project: Path) -> None:
        assert cli(project, "notebook", str(project / "nope.yaml")) == 2


class TestLanguages:
    def test_lists_resolution(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert cli(project, "languages") == 0
        lines = capsys.readouterr().out.splitlines()
        python = next(line for line in lines if sys.executable in line)
        assert "Python" in python
        assert any("Rust" in line and "rust" in line for line in lines)
