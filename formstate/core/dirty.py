"""
Dirty-field tracking.

Two recompute entry points with different granularity:

- ``recalculate_dirty_subtree`` walks a subtree recursively and marks
  individual leaves. Used after scalar writes and full value replacement.
- ``recalculate_dirty_fields_for_array`` compares whole array items as
  opaque blocks. Used after append/remove/swap/move, where a recursive
  diff per item would be too costly. A later scalar write inside an item
  restores leaf-level precision for that item.

Dirtiness is always measured against the initial values with structural
(deep value) equality, never object identity.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from formstate.core.paths import MISSING, get_nested_value, is_under


def structurally_equal(a: Any, b: Any) -> bool:
    """Deep value equality for encoded form values.

    Dicts compare by key set and per-key value, lists and tuples by
    length and per-index value. Booleans only equal booleans, so
    ``True`` is not equal to ``1``.
    """
    if a is b:
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(structurally_equal(a[key], b[key]) for key in a)
    if _is_array(a) and _is_array(b):
        if len(a) != len(b):
            return False
        return all(structurally_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False
    return a == b


def _is_array(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _without_subtree(dirty: Iterable[str], root: str) -> set[str]:
    return {path for path in dirty if not is_under(path, root)}


def recalculate_dirty_subtree(
    current_dirty: Iterable[str],
    initial: Any,
    current: Any,
    root_path: str = "",
) -> frozenset[str]:
    """Recompute dirty paths under ``root_path`` with leaf-level precision.

    Args:
        current_dirty: The dirty set before the change.
        initial: The full initial values.
        current: The full current values.
        root_path: Subtree to recompute; "" means the whole form.

    Returns:
        The new dirty set. Paths outside ``root_path`` are carried over.
    """
    target_current = get_nested_value(current, root_path, MISSING)
    target_initial = get_nested_value(initial, root_path, MISSING)

    if structurally_equal(target_current, target_initial):
        if root_path == "":
            return frozenset()
        return frozenset(_without_subtree(current_dirty, root_path))

    next_dirty = set() if root_path == "" else _without_subtree(current_dirty, root_path)

    def recurse(value: Any, initial_value: Any, path: str) -> None:
        if _is_array(value):
            initial_items = initial_value if _is_array(initial_value) else ()
            for index in range(max(len(value), len(initial_items))):
                recurse(
                    value[index] if index < len(value) else MISSING,
                    initial_items[index] if index < len(initial_items) else MISSING,
                    f"{path}[{index}]",
                )
        elif isinstance(value, dict):
            initial_obj = initial_value if isinstance(initial_value, dict) else {}
            keys = list(value.keys()) + [k for k in initial_obj if k not in value]
            for key in keys:
                recurse(
                    value.get(key, MISSING),
                    initial_obj.get(key, MISSING),
                    f"{path}.{key}" if path else str(key),
                )
        elif not structurally_equal(value, initial_value) and path:
            next_dirty.add(path)

    recurse(target_current, target_initial, root_path)
    return frozenset(next_dirty)


def recalculate_dirty_fields_for_array(
    dirty_fields: Iterable[str],
    initial: Any,
    array_path: str,
    new_items: Sequence[Any],
) -> frozenset[str]:
    """Recompute dirty paths for an array after a structural mutation.

    Each index is compared as a whole item. ``array_path[i]`` is dirty when
    the item differs from the initial item at the same index, and
    ``array_path`` itself is dirty only when the length changed.

    Args:
        dirty_fields: The dirty set before the mutation.
        initial: The full initial values.
        array_path: Path of the mutated array.
        new_items: The array after mutation.

    Returns:
        The new dirty set.
    """
    initial_items = get_nested_value(initial, array_path)
    if new_items is initial_items:
        return frozenset(dirty_fields)
    if not _is_array(initial_items):
        initial_items = ()

    next_dirty = _without_subtree(dirty_fields, array_path)
    for index in range(max(len(new_items), len(initial_items))):
        new_item = new_items[index] if index < len(new_items) else MISSING
        initial_item = initial_items[index] if index < len(initial_items) else MISSING
        if not structurally_equal(new_item, initial_item):
            next_dirty.add(f"{array_path}[{index}]")

    if len(new_items) != len(initial_items):
        next_dirty.add(array_path)
    else:
        next_dirty.discard(array_path)
    return frozenset(next_dirty)
