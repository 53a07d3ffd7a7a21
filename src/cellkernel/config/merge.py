"""Layering of raw config dicts before they become typed sections."""

from __future__ import annotations

from functools import reduce
from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` overlaid with ``override``.

    Sections (nested dicts) merge key by key; lists and scalars are
    replaced whole; a None in ``override`` keeps the base value, so an
    empty YAML key never erases a lower layer.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        below = merged.get(key)
        merged[key] = (
            deep_merge(below, value)
            if isinstance(below, dict) and isinstance(value, dict)
            else value
        )
    return merged


def merge_configs(*layers: dict[str, Any]) -> dict[str, Any]:
    """Fold layers lowest priority first; empty layers are skipped."""
    return reduce(deep_merge, (layer for layer in layers if layer), {})
