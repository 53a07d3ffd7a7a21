"""Cell and notebook data model."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cellkernel.output import ClassifiedOutput


class CellKind(Enum):
    CODE = "code"
    MARKDOWN = "markdown"
    RAW = "raw"
    PROCEDURE = "procedure"  # Generated code from a procedure description


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Cell:
    """One unit of source text plus its accumulated output state.

    The UI edits source, language, kind and tags; every other field is
    owned by the execution engine.
    """

    source: str = ""
    language: str = "python"
    kind: CellKind = CellKind.CODE
    cell_id: str = field(default_factory=_new_id)
    generated_source: str = ""  # Code produced for PROCEDURE cells
    tags: set[str] = field(default_factory=set)

    # Engine-owned
    output_text: str = ""
    image_refs: list[Path] = field(default_factory=list)
    structured_ref: str | None = None
    execution_ordinal: int | None = None
    is_running: bool = False
    is_error: bool = False
    exit_code: int | None = None
    elapsed_ms: float = 0.0

    @property
    def is_executable(self) -> bool:
        return self.kind in (CellKind.CODE, CellKind.PROCEDURE)

    @property
    def executable_source(self) -> str:
        """Source that is actually run (generated code for procedure cells)."""
        if self.kind is CellKind.PROCEDURE:
            return self.generated_source
        return self.source

    def apply(self, output: ClassifiedOutput, ordinal: int | None, elapsed_ms: float = 0.0) -> None:
        """Write a completed run's classified output into the cell."""
        self.output_text = output.text
        self.image_refs = list(output.images)
        self.structured_ref = output.structured_ref
        self.is_error = output.is_error
        self.exit_code = output.exit_code
        self.elapsed_ms = elapsed_ms
        if ordinal is not None:
            self.execution_ordinal = ordinal
        self.is_running = False

    def clear_output(self) -> None:
        """Clear engine-owned output, keeping the execution ordinal."""
        self.output_text = ""
        self.image_refs = []
        self.structured_ref = None
        self.is_running = False
        self.is_error = False
        self.exit_code = None
        self.elapsed_ms = 0.0

    def reset(self) -> None:
        """Clear output and the execution ordinal."""
        self.clear_output()
        self.execution_ordinal = None

    def snapshot(self) -> dict[str, Any]:
        """Observable view of the cell for the UI layer."""
        return {
            "id": self.cell_id,
            "language": self.language,
            "source": self.source,
            "outputText": self.output_text,
            "imageRefs": [str(p) for p in self.image_refs],
            "structuredRef": self.structured_ref,
            "executionOrdinal": self.execution_ordinal,
            "isRunning": self.is_running,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.cell_id,
            "kind": self.kind.value,
            "language": self.language,
            "source": self.source,
            "generated_source": self.generated_source,
            "tags": sorted(self.tags),
            "output_text": self.output_text,
            "image_refs": [str(p) for p in self.image_refs],
            "structured_ref": self.structured_ref,
            "execution_ordinal": self.execution_ordinal,
            "is_error": self.is_error,
            "exit_code": self.exit_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cell:
        return cls(
            cell_id=data.get("id") or _new_id(),
            kind=CellKind(data.get("kind", "code")),
            language=data.get("language", "python"),
            source=data.get("source", ""),
            generated_source=data.get("generated_source", ""),
            tags=set(data.get("tags") or []),
            output_text=data.get("output_text", ""),
            image_refs=[Path(p) for p in data.get("image_refs") or []],
            structured_ref=data.get("structured_ref"),
            execution_ordinal=data.get("execution_ordinal"),
            is_error=bool(data.get("is_error", False)),
            exit_code=data.get("exit_code"),
        )


_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]")

# Top-level binding of an attached data file, per language
_BINDINGS = {
    "python": '{name} = "{value}"',
    "r": '{name} <- "{value}"',
    "julia": '{name} = "{value}"',
    "rust": '#[allow(dead_code, non_upper_case_globals)]\nconst {name}: &str = "{value}";',
    "sql": "-- {name}: {value}",
}
_COMMENT_BINDING = "// {name}: {value}"


def variable_name(file_name: str) -> str:
    """Variable name bound to an attached data file (``sales-2024.csv`` -> ``sales_2024_csv``)."""
    name = _NON_IDENTIFIER.sub("_", file_name)
    return f"_{name}" if name[:1].isdigit() else name


@dataclass
class Notebook:
    """Ordered collection of cells plus attached data files."""

    name: str = "Untitled"
    cells: list[Cell] = field(default_factory=list)
    data_files: list[Path] = field(default_factory=list)

    def add_cell(self, cell: Cell | None = None, index: int | None = None, **kwargs: Any) -> Cell:
        """Insert a cell (or a new one built from kwargs) and return it."""
        if cell is None:
            cell = Cell(**kwargs)
        if index is None:
            self.cells.append(cell)
        else:
            self.cells.insert(index, cell)
        return cell

    def get(self, cell_id: str) -> Cell | None:
        for cell in self.cells:
            if cell.cell_id == cell_id:
                return cell
        return None

    def remove_cell(self, cell_id: str) -> Cell | None:
        cell = self.get(cell_id)
        if cell is not None:
            self.cells.remove(cell)
        return cell

    def move_cell(self, cell_id: str, index: int) -> bool:
        """Move a cell to a new position. Returns False if the id is unknown."""
        cell = self.get(cell_id)
        if cell is None:
            return False
        self.cells.remove(cell)
        index = max(0, min(index, len(self.cells)))
        self.cells.insert(index, cell)
        return True

    def code_cells(self) -> list[Cell]:
        return [cell for cell in self.cells if cell.is_executable]

    def cells_with_tag(self, tag: str) -> list[Cell]:
        return [cell for cell in self.code_cells() if tag in cell.tags]

    def data_file_preamble(self, language: str = "python") -> str:
        """Source binding each attached data file to a variable.

        Returns an empty string when no data files are attached.
        """
        if not self.data_files:
            return ""
        template = _BINDINGS.get(language, _COMMENT_BINDING)
        lines = []
        for path in self.data_files:
            value = str(path).replace("\\", "\\\\").replace('"', '\\"')
            lines.append(template.format(name=variable_name(path.name), value=value))
        return "\n".join(lines) + "\n"
