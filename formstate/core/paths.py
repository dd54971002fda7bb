"""
Field path utilities.

A field path addresses a location inside the nested form values using
dot notation for object keys and bracket notation for array indices,
e.g. ``items[2].address.city``. All helpers here are pure: reads never
raise on a missing location and writes return a new root that shares
every untouched subtree with the old one.
"""

import re
from collections.abc import Iterable, Sequence
from typing import Any

_BRACKET_INDEX = re.compile(r"\[(\d+)\]")


class _Missing:
    """Marker for 'no value at this location' (distinct from None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# -----------------------------------------------------------------
# Path construction and comparison
# -----------------------------------------------------------------


def to_path(segments: Iterable[str | int]) -> str:
    """Join path segments into a dot/bracket path string.

    The first segment is emitted bare, integer segments become ``[n]``
    and string segments after the first become ``.key``.

    Example:
        >>> to_path(["items", 0, "name"])
        'items[0].name'

    Args:
        segments: Object keys (str) and array indices (int).

    Returns:
        The path string, or "" for no segments.
    """
    result = ""
    for position, segment in enumerate(segments):
        if isinstance(segment, int) and not isinstance(segment, bool):
            result += f"[{segment}]"
        elif position == 0:
            result = str(segment)
        else:
            result += f".{segment}"
    return result


def split_path(path: str) -> list[str | int]:
    """Split a path string back into key and index segments."""
    if path == "":
        return []
    normalized = _BRACKET_INDEX.sub(r".\1", path)
    segments: list[str | int] = []
    for part in normalized.split("."):
        if part == "":
            continue
        segments.append(int(part) if part.isdigit() else part)
    return segments


def is_under(path: str, root: str) -> bool:
    """True if ``path`` is ``root`` itself or a descendant of it."""
    return path == root or path.startswith(root + ".") or path.startswith(root + "[")


def parent_path(path: str) -> str | None:
    """Trim the last segment off ``path``; None when there is no parent."""
    split_at = max(path.rfind("."), path.rfind("["))
    if split_at == -1:
        return None
    return path[:split_at]


def is_path_or_parent_dirty(dirty_fields: Iterable[str], path: str) -> bool:
    """Check whether ``path`` or any ancestor container is in the dirty set.

    Ancestors are found by trimming back to the rightmost ``.`` or ``[``,
    so no separate per-ancestor index is needed.
    """
    if not isinstance(dirty_fields, (set, frozenset)):
        dirty_fields = set(dirty_fields)
    current: str | None = path
    while current is not None:
        if current in dirty_fields:
            return True
        current = parent_path(current)
    return False


# -----------------------------------------------------------------
# Nested reads and writes
# -----------------------------------------------------------------


def _step(container: Any, segment: str | int) -> Any:
    """Read one segment from a container, MISSING when absent."""
    if isinstance(container, dict):
        key = segment if segment in container else str(segment)
        return container.get(key, MISSING)
    if isinstance(container, Sequence) and not isinstance(container, str):
        try:
            index = int(segment)
        except (TypeError, ValueError):
            return MISSING
        if 0 <= index < len(container):
            return container[index]
        return MISSING
    return MISSING


def get_nested_value(root: Any, path: str, default: Any = None) -> Any:
    """Read the value at ``path``.

    Returns ``root`` unchanged for the empty path. Walking stops with
    ``default`` as soon as a non-container is reached before the path is
    exhausted; it never raises.
    """
    if path == "":
        return root
    current = root
    for segment in split_path(path):
        if not isinstance(current, (dict, list, tuple)):
            return default
        current = _step(current, segment)
        if current is MISSING:
            return default
    return current


def _copy_container(value: Any, next_segment: str | int) -> Any:
    """Shallow-copy a container on the write path, creating one if absent."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return [] if isinstance(next_segment, int) else {}


def _assign(container: Any, segment: str | int, value: Any) -> None:
    if isinstance(container, list):
        index = int(segment)
        if index < len(container):
            container[index] = value
        else:
            container.extend([None] * (index - len(container)))
            container.append(value)
    else:
        container[segment if isinstance(segment, str) else str(segment)] = value


def set_nested_value(root: Any, path: str, value: Any) -> Any:
    """Write ``value`` at ``path`` without mutating ``root``.

    The empty path replaces the whole root. Otherwise every container
    along the path is shallow-copied (lists stay lists, dicts stay dicts)
    and the leaf replaced; siblings are shared by reference with ``root``.

    Args:
        root: The current values tree.
        path: Where to write.
        value: The new leaf value.

    Returns:
        The new root.
    """
    if path == "":
        return value
    segments = split_path(path)
    new_root = _copy_container(root, segments[0])
    current = new_root
    for segment, next_segment in zip(segments, segments[1:]):
        child = _step(current, segment)
        copied = _copy_container(child, next_segment)
        _assign(current, segment, copied)
        current = copied
    _assign(current, segments[-1], value)
    return new_root
