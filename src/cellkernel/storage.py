"""Notebook persistence.

Notebooks are saved as YAML files, by default in:
  $PROJECT/.cellkernel/notebooks/<name>.yaml

Notebook files contain:
- name: Notebook name
- created_at / updated_at: ISO timestamps
- data_files: Attached data file paths
- cells: Kind, language, source, tags, outputs and execution ordinals

export_ipynb writes a Jupyter-compatible copy for use in other tools.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from cellkernel.config.paths import get_project_dir
from cellkernel.kernel.cell import Cell, CellKind, Notebook
from cellkernel.logging import get_logger

log = get_logger("storage")

FORMAT_VERSION = 1


@dataclass
class NotebookMetadata:
    """Lightweight notebook metadata for listing."""

    name: str
    path: Path
    cell_count: int
    updated_at: datetime | None


def get_notebooks_dir(cwd: str | Path) -> Path:
    """Directory holding a project's saved notebooks."""
    return get_project_dir(cwd) / "notebooks"


def notebook_filename(name: str) -> str:
    """File name for a notebook name (unsafe characters replaced)."""
    stem = re.sub(r"[^\w.-]+", "_", name).strip("._") or "notebook"
    return f"{stem}.yaml"


def notebook_to_dict(notebook: Notebook, created_at: datetime | None = None) -> dict[str, Any]:
    now = datetime.now()
    return {
        "version": FORMAT_VERSION,
        "name": notebook.name,
        "created_at": (created_at or now).isoformat(),
        "updated_at": now.isoformat(),
        "data_files": [str(p) for p in notebook.data_files],
        "cells": [cell.to_dict() for cell in notebook.cells],
    }


def notebook_from_dict(data: dict[str, Any]) -> Notebook:
    return Notebook(
        name=data.get("name", "Untitled"),
        cells=[Cell.from_dict(c) for c in data.get("cells") or []],
        data_files=[Path(p) for p in data.get("data_files") or []],
    )


def save_notebook(notebook: Notebook, path: str | Path | None = None, cwd: str | Path = ".") -> Path:
    """Save a notebook to a YAML file.

    Performs atomic write by writing to a temp file first.

    Args:
        notebook: Notebook to save.
        path: Target file. Defaults to the project's notebooks directory.
        cwd: Project directory used when path is None.

    Returns:
        Path to the saved notebook file.

    Raises:
        OSError: If the file cannot be written.
    """
    if path is None:
        target = get_notebooks_dir(cwd) / notebook_filename(notebook.name)
    else:
        target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(target.name + ".tmp")

    created_at = None
    if target.exists():
        previous = _read_yaml(target)
        if previous and previous.get("created_at"):
            try:
                created_at = datetime.fromisoformat(previous["created_at"])
            except (TypeError, ValueError):
                created_at = None

    data = notebook_to_dict(notebook, created_at)
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        temp_path.replace(target)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise

    log.debug("Saved notebook %s to %s", notebook.name, target)
    return target


def _read_yaml(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        log.warning("Failed to read notebook %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def load_notebook(path: str | Path) -> Notebook | None:
    """Load a notebook from a YAML file.

    Returns:
        Notebook, or None if the file doesn't exist or is invalid.
    """
    path = Path(path)
    if not path.exists():
        return None
    data = _read_yaml(path)
    if data is None:
        return None
    try:
        return notebook_from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        log.warning("Invalid notebook %s: %s", path, e)
        return None


def list_notebooks(cwd: str | Path) -> list[NotebookMetadata]:
    """List saved notebooks for a project, most recently updated first."""
    notebooks_dir = get_notebooks_dir(cwd)
    if not notebooks_dir.is_dir():
        return []

    entries: list[NotebookMetadata] = []
    for path in sorted(notebooks_dir.glob("*.yaml")):
        data = _read_yaml(path)
        if data is None:
            continue
        updated_at = None
        if data.get("updated_at"):
            try:
                updated_at = datetime.fromisoformat(data["updated_at"])
            except (TypeError, ValueError):
                updated_at = None
        entries.append(
            NotebookMetadata(
                name=data.get("name", path.stem),
                path=path,
                cell_count=len(data.get("cells") or []),
                updated_at=updated_at,
            )
        )
    entries.sort(key=lambda e: e.updated_at or datetime.min, reverse=True)
    return entries


def _lines(text: str) -> list[str]:
    if not text:
        return []
    lines = text.split("\n")
    return [line + "\n" for line in lines[:-1]] + [lines[-1]]


_IPYNB_TYPES = {CellKind.MARKDOWN: "markdown", CellKind.RAW: "raw"}


def export_ipynb(notebook: Notebook, path: str | Path) -> Path:
    """Write the notebook in Jupyter's nbformat 4 JSON layout."""
    cells = []
    for cell in notebook.cells:
        cell_type = _IPYNB_TYPES.get(cell.kind, "code")
        entry: dict[str, Any] = {
            "cell_type": cell_type,
            "metadata": {"language": cell.language, "tags": sorted(cell.tags)},
            "source": _lines(cell.executable_source if cell_type == "code" else cell.source),
        }
        if cell_type == "code":
            entry["execution_count"] = cell.execution_ordinal
            entry["outputs"] = []
            if cell.output_text:
                entry["outputs"].append({
                    "output_type": "stream",
                    "name": "stderr" if cell.is_error else "stdout",
                    "text": _lines(cell.output_text),
                })
        cells.append(entry)

    document = {
        "cells": cells,
        "metadata": {
            "kernelspec": {"display_name": "Python 3", "language": "python", "name": "python3"},
            "language_info": {"name": "python", "file_extension": ".py"},
        },
        "nbformat": 4,
        "nbformat_minor": 4,
    }
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(document, indent=1, ensure_ascii=False) + "\n", encoding="utf-8")
    return target
