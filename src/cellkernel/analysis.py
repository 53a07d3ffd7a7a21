"""Lightweight static analysis run before auto-run dispatch.

Detects the GUI framework a buffer targets and the third-party packages a
Python buffer imports. Analysis is text-based and never executes code.
"""

from __future__ import annotations

import ast
import re
import sys
from dataclasses import dataclass

# (language, needles, framework); first match wins, needles are lowercase
_GUI_FRAMEWORKS: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("python", ("import tkinter", "from tkinter"), "tkinter"),
    ("python", ("import pyqt", "from pyqt"), "PyQt5"),
    ("python", ("import customtkinter", "from customtkinter"), "customtkinter"),
    ("python", ("import kivy", "from kivy"), "Kivy"),
    ("swift", ("import swiftui", "@main"), "SwiftUI"),
    ("rust", ("egui", "eframe"), "egui"),
    ("rust", ("gtk",), "GTK"),
)

_IMPORT_LINE = re.compile(r"^\s*(?:from\s+([\w.]+)\s+import|import\s+([\w.]+(?:\s*,\s*[\w.]+)*))", re.M)

_STDLIB = frozenset(sys.stdlib_module_names) | {"__future__"}


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analysing one buffer.

    Attributes:
        language: Language the buffer was analysed as.
        gui_framework: Detected GUI framework, or None.
        imports: Third-party top-level packages (Python only), sorted.
    """

    language: str
    gui_framework: str | None = None
    imports: tuple[str, ...] = ()


def detect_gui_framework(source: str, language: str) -> str | None:
    lowered = source.lower()
    for lang, needles, framework in _GUI_FRAMEWORKS:
        if lang == language and any(needle in lowered for needle in needles):
            return framework
    return None


def _imported_modules(source: str) -> list[str]:
    try:
        tree = ast.parse(source)
    except (SyntaxError, ValueError):
        # Half-typed buffers; fall back to line matching
        names: list[str] = []
        for match in _IMPORT_LINE.finditer(source):
            if match.group(1):
                names.append(match.group(1))
            else:
                names.extend(part.strip() for part in match.group(2).split(","))
        return names

    names = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            names.append(node.module)
    return names


def python_imports(source: str) -> tuple[str, ...]:
    """Third-party top-level packages imported by Python source."""
    packages = {name.split(".", 1)[0] for name in _imported_modules(source)}
    return tuple(sorted(name for name in packages if name and name not in _STDLIB))


def analyze(source: str, language: str) -> AnalysisResult:
    """Analyse a buffer. Blocking; run it off the event loop."""
    imports = python_imports(source) if language == "python" else ()
    return AnalysisResult(language, detect_gui_framework(source, language), imports)
