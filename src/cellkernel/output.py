"""Output protocol parsing.

Runners stay protocol-agnostic: they return raw captured text. This module
recognises the two conventions programs use to hand richer results back:

- ``[IMAGE:<filename>]`` marker lines naming a figure saved in the workspace
- a JSON envelope ``{"__is_table__": true, "path": "<string>"}`` naming
  externally stored tabular data

Neither convention is escaped or versioned, so ordinary program output that
happens to match either shape is classified as a handoff.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cellkernel.logging import get_logger
from cellkernel.runners.result import ExecutionResult, ExecutionStatus
from cellkernel.workspace import resolve_within

log = get_logger("output")

IMAGE_MARKER = re.compile(r"\[IMAGE:(.+?)\]")
STRUCTURED_KEY = "__is_table__"
COMPILE_HEADING = "Compilation failed:"


class OutputKind(Enum):
    TEXT = "text"
    TEXT_WITH_IMAGES = "text_with_images"
    STRUCTURED_HANDOFF = "structured_handoff"


@dataclass(frozen=True)
class ClassifiedOutput:
    """Classified result of one run, applied to a cell exactly once.

    Attributes:
        kind: Which output convention matched.
        text: Text to surface (empty for a structured handoff).
        images: Existing image files referenced by markers, in order.
        structured_ref: Path carried by a structured handoff.
        is_error: True when the text is failure output.
        exit_code: Process exit code, annotated separately from the text.
        status: Execution status of the run.
    """

    kind: OutputKind
    text: str = ""
    images: tuple[Path, ...] = ()
    structured_ref: str | None = None
    is_error: bool = False
    exit_code: int | None = None
    status: ExecutionStatus = ExecutionStatus.OK

    @property
    def cancelled(self) -> bool:
        return self.status is ExecutionStatus.CANCELLED


def _structured_path(text: str) -> str | None:
    """Return the handoff path if the whole text is a handoff envelope."""
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return None
    try:
        payload = json.loads(stripped)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    if payload.get(STRUCTURED_KEY) is not True:
        return None
    path = payload.get("path")
    return path if isinstance(path, str) else None


def _collect_images(text: str, workspace_root: Path) -> list[Path]:
    """Existing workspace files named by image markers, first mention first."""
    images: list[Path] = []
    for match in IMAGE_MARKER.finditer(text):
        name = match.group(1).strip()
        try:
            candidate = resolve_within(workspace_root, name)
            exists = candidate is not None and candidate.is_file()
        except (OSError, ValueError, RuntimeError) as e:
            log.debug("Ignoring image marker %r: %s", name, e)
            continue
        if candidate is None:
            log.debug("Image marker %r points outside the workspace", name)
        elif not exists:
            log.debug("Image marker names missing file %s", name)
        elif candidate not in images:
            images.append(candidate)
    return images


class OutputProtocolParser:
    """Turns raw captured text into a ClassifiedOutput."""

    def parse_text(self, text: str, workspace_root: Path) -> ClassifiedOutput:
        """Classify bare text from a successful run."""
        path = _structured_path(text)
        if path is not None:
            return ClassifiedOutput(OutputKind.STRUCTURED_HANDOFF, structured_ref=path)

        images = _collect_images(text, workspace_root)
        stripped = IMAGE_MARKER.sub("", text).strip()
        if images:
            return ClassifiedOutput(OutputKind.TEXT_WITH_IMAGES, stripped, tuple(images))
        return ClassifiedOutput(OutputKind.TEXT, stripped)

    def parse(self, result: ExecutionResult | str, workspace_root: Path) -> ClassifiedOutput:
        """Classify a runner result (or bare text).

        Failure results are never scanned for handoffs; their text is
        surfaced as-is with is_error set, though figures a failing program
        saved before it died are still attached. Cancelled runs are not
        errors.
        """
        if isinstance(result, str):
            return self.parse_text(result, workspace_root)

        if result.cancelled:
            return ClassifiedOutput(
                OutputKind.TEXT,
                IMAGE_MARKER.sub("", result.output).strip(),
                exit_code=result.exit_code,
                status=result.status,
            )

        if result.is_failure:
            text = result.output.strip()
            images: list[Path] = []
            if result.status is ExecutionStatus.COMPILE_FAILURE:
                text = f"{COMPILE_HEADING}\n{text}" if text else COMPILE_HEADING
            elif result.status is ExecutionStatus.RUNTIME_FAILURE:
                images = _collect_images(text, workspace_root)
                text = IMAGE_MARKER.sub("", text).strip()
            return ClassifiedOutput(
                OutputKind.TEXT_WITH_IMAGES if images else OutputKind.TEXT,
                text,
                tuple(images),
                is_error=True,
                exit_code=result.exit_code,
                status=result.status,
            )

        classified = self.parse_text(result.output, workspace_root)
        return ClassifiedOutput(
            classified.kind,
            classified.text,
            classified.images,
            classified.structured_ref,
            exit_code=result.exit_code,
            status=result.status,
        )
