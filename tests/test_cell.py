"""Tests for the cell and notebook model."""

from __future__ import annotations

from pathlib import Path

from cellkernel.kernel import Cell, CellKind, Notebook
from cellkernel.kernel.cell import variable_name
from cellkernel.output import ClassifiedOutput, OutputKind
from cellkernel.runners.result import ExecutionStatus


class TestCell:
    def test_defaults(self) -> None:
        cell = Cell("print(1)")
        assert cell.language == "python"
        assert cell.kind is CellKind.CODE
        assert cell.is_executable
        assert cell.execution_ordinal is None
        assert len(cell.cell_id) == 32

    def test_ids_unique(self) -> None:
        assert Cell().cell_id != Cell().cell_id

    def test_executable_kinds(self) -> None:
        assert not Cell(kind=CellKind.MARKDOWN).is_executable
        assert not Cell(kind=CellKind.RAW).is_executable
        procedure = Cell("Sum the column", kind=CellKind.PROCEDURE, generated_source="print(3)")
        assert procedure.is_executable
        assert procedure.executable_source == "print(3)"

    def test_apply(self, tmp_path: Path) -> None:
        cell = Cell("x", is_running=True)
        output = ClassifiedOutput(
            OutputKind.TEXT_WITH_IMAGES, "done", (tmp_path / "a.png",), exit_code=0
        )
        cell.apply(output, 7, 12.5)

        assert cell.output_text == "done"
        assert cell.image_refs == [tmp_path / "a.png"]
        assert cell.execution_ordinal == 7
        assert cell.elapsed_ms == 12.5
        assert not cell.is_running

    def test_apply_without_ordinal_keeps_previous(self) -> None:
        cell = Cell("x", execution_ordinal=3)
        cancelled = ClassifiedOutput(OutputKind.TEXT, status=ExecutionStatus.CANCELLED)
        cell.apply(cancelled, None)
        assert cell.execution_ordinal == 3

    def test_clear_and_reset(self) -> None:
        cell = Cell("x", output_text="out", is_error=True, execution_ordinal=2)
        cell.clear_output()
        assert cell.output_text == ""
        assert not cell.is_error
        assert cell.execution_ordinal == 2

        cell.reset()
        assert cell.execution_ordinal is None

    def test_snapshot(self) -> None:
        cell = Cell("print(1)", cell_id="abc", output_text="1", execution_ordinal=1)
        assert cell.snapshot() == {
            "id": "abc",
            "language": "python",
            "source": "print(1)",
            "outputText": "1",
            "imageRefs": [],
            "structuredRef": None,
            "executionOrdinal": 1,
            "isRunning": False,
        }

    def test_dict_round_trip(self) -> None:
        cell = Cell(
            "Describe it",
            language="python",
            kind=CellKind.PROCEDURE,
            generated_source="print(1)",
            tags={"b", "a"},
            output_text="1",
            execution_ordinal=4,
        )
        data = cell.to_dict()
        assert data["tags"] == ["a", "b"]
        restored = Cell.from_dict(data)
        assert restored.cell_id == cell.cell_id
        assert restored.kind is CellKind.PROCEDURE
        assert restored.tags == {"a", "b"}
        assert restored.execution_ordinal == 4
        assert not restored.is_running


class TestNotebook:
    def test_add_insert_move_remove(self) -> None:
        notebook = Notebook()
        a = notebook.add_cell(source="a")
        c = notebook.add_cell(source="c")
        b = notebook.add_cell(Cell("b"), index=1)
        assert [x.source for x in notebook.cells] == ["a", "b", "c"]

        assert notebook.move_cell(c.cell_id, 0)
        assert [x.source for x in notebook.cells] == ["c", "a", "b"]
        assert notebook.move_cell(a.cell_id, 99)
        assert [x.source for x in notebook.cells] == ["c", "b", "a"]
        assert not notebook.move_cell("missing", 0)

        assert notebook.remove_cell(b.cell_id) is b
        assert notebook.get(b.cell_id) is None
        assert notebook.remove_cell("missing") is None

    def test_code_cells_and_tags(self) -> None:
        notebook = Notebook()
        notebook.add_cell(source="# md", kind=CellKind.MARKDOWN, tags={"x"})
        tagged = notebook.add_cell(source="1", tags={"x"})
        notebook.add_cell(source="2")
        assert len(notebook.code_cells()) == 2
        assert notebook.cells_with_tag("x") == [tagged]

    def test_variable_names(self) -> None:
        assert variable_name("sales-2024.csv") == "sales_2024_csv"
        assert variable_name("2024 data.parquet") == "_2024_data_parquet"

    def test_data_file_preamble(self) -> None:
        notebook = Notebook(data_files=[Path("/data/a.csv")])
        assert notebook.data_file_preamble("python") == 'a_csv = "/data/a.csv"\n'
        assert notebook.data_file_preamble("r") == 'a_csv <- "/data/a.csv"\n'
        assert notebook.data_file_preamble("julia") == 'a_csv = "/data/a.csv"\n'
        assert 'const a_csv: &str = "/data/a.csv";' in notebook.data_file_preamble("rust")
        assert notebook.data_file_preamble("sql") == "-- a_csv: /data/a.csv\n"
        assert notebook.data_file_preamble("go") == "// a_csv: /data/a.csv\n"
        assert notebook.data_file_preamble("cpp") == "// a_csv: /data/a.csv\n"

    def test_preamble_escapes_quotes(self) -> None:
        notebook = Notebook(data_files=[Path('/data/say "hi".csv')])
        assert notebook.data_file_preamble() == 'say__hi__csv = "/data/say \\"hi\\".csv"\n'

    def test_no_data_files_no_preamble(self) -> None:
        assert Notebook().data_file_preamble() == ""
