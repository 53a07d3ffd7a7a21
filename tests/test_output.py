"""Tests for output protocol classification."""

from __future__ import annotations

from pathlib import Path

import pytest

from cellkernel.output import COMPILE_HEADING, OutputKind, OutputProtocolParser
from cellkernel.runners.result import ExecutionResult, ExecutionStatus


@pytest.fixture
def parser() -> OutputProtocolParser:
    return OutputProtocolParser()


def ok(output: str) -> ExecutionResult:
    return ExecutionResult(output, 0, ExecutionStatus.OK)


class TestPlainText:
    def test_plain_text(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        out = parser.parse(ok("hello\n"), tmp_path)
        assert out.kind is OutputKind.TEXT
        assert out.text == "hello"
        assert out.images == ()
        assert out.structured_ref is None
        assert not out.is_error
        assert out.exit_code == 0

    def test_bare_string(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        assert parser.parse("  spaced  \n", tmp_path).text == "spaced"

    def test_empty_output(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        out = parser.parse(ok(""), tmp_path)
        assert out.kind is OutputKind.TEXT
        assert out.text == ""


class TestImageMarkers:
    def test_marker_stripped_and_image_attached(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        (tmp_path / "output_0.png").write_bytes(b"\x89PNG")
        out = parser.parse(ok("done\n[IMAGE:output_0.png]\n"), tmp_path)

        assert out.kind is OutputKind.TEXT_WITH_IMAGES
        assert out.text == "done"
        assert out.images == (tmp_path / "output_0.png",)

    def test_missing_image_dropped(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        out = parser.parse(ok("done\n[IMAGE:ghost.png]\n"), tmp_path)
        assert out.kind is OutputKind.TEXT
        assert out.text == "done"
        assert out.images == ()

    def test_order_kept_and_duplicates_removed(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        for name in ("b.png", "a.png"):
            (tmp_path / name).write_bytes(b"png")
        text = "[IMAGE:b.png]\nmiddle\n[IMAGE:a.png]\n[IMAGE:b.png]"
        out = parser.parse(ok(text), tmp_path)
        assert out.images == (tmp_path / "b.png", tmp_path / "a.png")
        assert out.text == "middle"

    def test_absolute_path_outside_workspace_ignored(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        secret = tmp_path / "secret.png"
        secret.write_bytes(b"png")
        workspace = tmp_path / "ws"
        workspace.mkdir()
        out = parser.parse(ok(f"shown\n[IMAGE:{secret}]"), workspace)
        assert out.kind is OutputKind.TEXT
        assert out.images == ()
        assert out.text == "shown"

    def test_parent_segments_cannot_escape(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        (tmp_path / "secret.png").write_bytes(b"png")
        workspace = tmp_path / "ws"
        workspace.mkdir()
        out = parser.parse(ok("[IMAGE:../secret.png]"), workspace)
        assert out.images == ()

    def test_spellings_of_one_file_deduplicated(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        (tmp_path / "plots").mkdir()
        image = tmp_path / "plots" / "fig.png"
        image.write_bytes(b"png")
        text = f"[IMAGE:plots/fig.png]\n[IMAGE:plots/../plots/fig.png]\n[IMAGE:{image}]"
        out = parser.parse(ok(text), tmp_path)
        assert out.images == (image.resolve(),)


class TestStructuredHandoff:
    def test_envelope(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        out = parser.parse(ok('{"__is_table__":true,"path":"/tmp/x.parquet"}'), tmp_path)
        assert out.kind is OutputKind.STRUCTURED_HANDOFF
        assert out.structured_ref == "/tmp/x.parquet"
        assert out.text == ""

    def test_envelope_with_surrounding_whitespace(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        out = parser.parse(ok('\n  {"__is_table__": true, "path": "t.csv"}\n'), tmp_path)
        assert out.structured_ref == "t.csv"

    @pytest.mark.parametrize(
        "text",
        [
            '{"__is_table__": false, "path": "/tmp/x"}',
            '{"__is_table__": true}',
            '{"__is_table__": true, "path": 42}',
            '{"path": "/tmp/x"}',
            'prefix {"__is_table__": true, "path": "/tmp/x"}',
            '{"__is_table__": true, "path": "/tmp/x"',
        ],
    )
    def test_not_an_envelope(
        self, parser: OutputProtocolParser, tmp_path: Path, text: str
    ) -> None:
        out = parser.parse(ok(text), tmp_path)
        assert out.kind is OutputKind.TEXT
        assert out.structured_ref is None
        assert out.text == text.strip()


class TestFailures:
    def test_runtime_failure(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        result = ExecutionResult(
            "Traceback...\nZeroDivisionError\n", 1, ExecutionStatus.RUNTIME_FAILURE
        )
        out = parser.parse(result, tmp_path)
        assert out.is_error
        assert out.exit_code == 1
        assert out.text == "Traceback...\nZeroDivisionError"
        assert out.status is ExecutionStatus.RUNTIME_FAILURE

    def test_runtime_failure_keeps_saved_figures(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        (tmp_path / "partial.png").write_bytes(b"png")
        result = ExecutionResult(
            "[IMAGE:partial.png]\nValueError: bad axis", 1, ExecutionStatus.RUNTIME_FAILURE
        )
        out = parser.parse(result, tmp_path)
        assert out.is_error
        assert out.kind is OutputKind.TEXT_WITH_IMAGES
        assert out.images == (tmp_path / "partial.png",)
        assert out.text == "ValueError: bad axis"

    def test_failure_never_classified_as_handoff(
        self, parser: OutputProtocolParser, tmp_path: Path
    ) -> None:
        envelope = '{"__is_table__": true, "path": "/tmp/x"}'
        result = ExecutionResult(envelope, 2, ExecutionStatus.RUNTIME_FAILURE)
        out = parser.parse(result, tmp_path)
        assert out.kind is OutputKind.TEXT
        assert out.structured_ref is None
        assert out.is_error

    def test_compile_failure_heading(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        result = ExecutionResult(
            "main.rs:1:1: error: expected item", 1, ExecutionStatus.COMPILE_FAILURE
        )
        out = parser.parse(result, tmp_path)
        assert out.is_error
        assert out.text.startswith(COMPILE_HEADING)
        assert "expected item" in out.text

    def test_toolchain_not_found(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        result = ExecutionResult(
            "Rust is not installed.", 127, ExecutionStatus.TOOLCHAIN_NOT_FOUND
        )
        out = parser.parse(result, tmp_path)
        assert out.is_error
        assert out.text == "Rust is not installed."
        assert out.exit_code == 127

    def test_cancelled_is_not_error(self, parser: OutputProtocolParser, tmp_path: Path) -> None:
        result = ExecutionResult("partial\n[IMAGE:x.png]", -1, ExecutionStatus.CANCELLED)
        out = parser.parse(result, tmp_path)
        assert out.cancelled
        assert not out.is_error
        assert out.text == "partial"
