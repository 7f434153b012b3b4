"""Reduce a pull request's diff to added/removed line totals."""

from __future__ import annotations

from typing import Any

from bbextract_core.errors import DecodeError
from bbextract_core.models import DiffStat

ADDED = "ADDED"
REMOVED = "REMOVED"


def _items(container: Any, key: str) -> list:
    if not isinstance(container, dict):
        raise DecodeError(f"expected an object holding {key!r}, got {type(container).__name__}")
    value = container.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"{key!r} must be a list, got {type(value).__name__}")
    return value


def _count(entry: dict, key: str) -> int:
    value = entry.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{key!r} must be an integer, got {type(value).__name__}")
    return value


def aggregate_diff(payload: dict | None) -> DiffStat:
    """Sum ADDED and REMOVED segment lines over every diff, hunk and segment.

    Context segments (and any other type) count toward neither total. An
    absent or empty diff yields zeros.
    """
    if not payload:
        return DiffStat()
    diffs = _items(payload, "diffs")
    added = removed = 0
    for diff in diffs:
        for hunk in _items(diff, "hunks"):
            for segment in _items(hunk, "segments"):
                if not isinstance(segment, dict):
                    raise DecodeError(f"segment must be an object, got {type(segment).__name__}")
                kind = segment.get("type")
                if kind == ADDED:
                    added += len(_items(segment, "lines"))
                elif kind == REMOVED:
                    removed += len(_items(segment, "lines"))
    return DiffStat(added=added, removed=removed, changed_files=len(diffs))


def aggregate_diffstat(values: list[dict]) -> DiffStat:
    """Sum the per-file `lines_added` / `lines_removed` of a cloud diffstat listing."""
    added = removed = 0
    for entry in values:
        if not isinstance(entry, dict):
            raise DecodeError(f"diffstat entry must be an object, got {type(entry).__name__}")
        added += _count(entry, "lines_added")
        removed += _count(entry, "lines_removed")
    return DiffStat(added=added, removed=removed, changed_files=len(values))
