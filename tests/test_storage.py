"""Tests for notebook persistence."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from cellkernel.kernel import Cell, CellKind, Notebook
from cellkernel.storage import (
    export_ipynb,
    get_notebooks_dir,
    list_notebooks,
    load_notebook,
    notebook_filename,
    save_notebook,
)


def sample_notebook() -> Notebook:
    notebook = Notebook("Sales Q3", data_files=[Path("/data/sales.csv")])
    notebook.add_cell(source="# Sales", kind=CellKind.MARKDOWN)
    notebook.add_cell(
        source="print(1)\nprint(2)", tags={"setup"}, output_text="1\n2", execution_ordinal=1
    )
    notebook.add_cell(source="SELECT 1;", language="sql", output_text="boom", is_error=True)
    return notebook


class TestSaveLoad:
    def test_save_default_location(self, tmp_path: Path) -> None:
        path = save_notebook(sample_notebook(), cwd=tmp_path)
        assert path == get_notebooks_dir(tmp_path) / "Sales_Q3.yaml"
        assert path.exists()
        assert not path.with_name(path.name + ".tmp").exists()

    def test_round_trip(self, tmp_path: Path) -> None:
        original = sample_notebook()
        loaded = load_notebook(save_notebook(original, tmp_path / "nb.yaml"))

        assert loaded is not None
        assert loaded.name == "Sales Q3"
        assert loaded.data_files == [Path("/data/sales.csv")]
        assert [c.cell_id for c in loaded.cells] == [c.cell_id for c in original.cells]
        assert loaded.cells[0].kind is CellKind.MARKDOWN
        assert loaded.cells[1].tags == {"setup"}
        assert loaded.cells[1].execution_ordinal == 1
        assert loaded.cells[2].language == "sql"
        assert loaded.cells[2].is_error

    def test_created_at_preserved(self, tmp_path: Path) -> None:
        path = tmp_path / "nb.yaml"
        notebook = sample_notebook()
        save_notebook(notebook, path)
        created = yaml.safe_load(path.read_text())["created_at"]

        notebook.add_cell(Cell("print(3)"))
        save_notebook(notebook, path)
        data = yaml.safe_load(path.read_text())
        assert data["created_at"] == created
        assert len(data["cells"]) == 4

    def test_load_missing(self, tmp_path: Path) -> None:
        assert load_notebook(tmp_path / "missing.yaml") is None

    def test_load_invalid(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("cells: [unclosed")
        assert load_notebook(bad) is None

        wrong_kind = tmp_path / "wrong.yaml"
        wrong_kind.write_text("cells:\n  - kind: spreadsheet\n")
        assert load_notebook(wrong_kind) is None

    def test_filename_sanitized(self) -> None:
        assert notebook_filename("a/b: c") == "a_b_c.yaml"
        assert notebook_filename("...") == "notebook.yaml"


class TestListNotebooks:
    def test_empty(self, tmp_path: Path) -> None:
        assert list_notebooks(tmp_path) == []

    def test_most_recent_first(self, tmp_path: Path) -> None:
        notebooks_dir = get_notebooks_dir(tmp_path)
        save_notebook(Notebook("old"), cwd=tmp_path)
        save_notebook(sample_notebook(), cwd=tmp_path)

        old = notebooks_dir / "old.yaml"
        data = yaml.safe_load(old.read_text())
        data["updated_at"] = "2000-01-01T00:00:00"
        old.write_text(yaml.safe_dump(data))

        entries = list_notebooks(tmp_path)
        assert [e.name for e in entries] == ["Sales Q3", "old"]
        assert entries[0].cell_count == 3
        assert entries[1].cell_count == 0


class TestExportIpynb:
    def test_layout(self, tmp_path: Path) -> None:
        path = export_ipynb(sample_notebook(), tmp_path / "out" / "nb.ipynb")
        document = json.loads(path.read_text())

        assert document["nbformat"] == 4
        markdown, code, sql = document["cells"]
        assert markdown["cell_type"] == "markdown"
        assert "outputs" not in markdown

        assert code["cell_type"] == "code"
        assert code["source"] == ["print(1)\n", "print(2)"]
        assert code["execution_count"] == 1
        assert code["metadata"]["tags"] == ["setup"]
        assert code["outputs"] == [
            {"output_type": "stream", "name": "stdout", "text": ["1\n", "2"]}
        ]

        assert sql["metadata"]["language"] == "sql"
        assert sql["execution_count"] is None
        assert sql["outputs"][0]["name"] == "stderr"
