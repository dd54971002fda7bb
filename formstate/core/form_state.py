"""
Form state shape and pure state operations.

A FormState is never mutated in place. Every operation takes the old
state and returns a new one (or the same object when nothing changes):
- Value writes recompute dirty paths at leaf level
- Array mutations recompute dirty paths at item level
- Submit and reset produce the touched/submit-count bookkeeping
- Revert restores the last successfully decoded submission
"""

from typing import Any, TypedDict

from formstate.core.dirty import (
    recalculate_dirty_fields_for_array,
    recalculate_dirty_subtree,
    structurally_equal,
)
from formstate.core.paths import MISSING, get_nested_value, set_nested_value
from formstate.core.schema import FormSchema, default_for


class FormNotInitializedError(RuntimeError):
    """Raised when a mutating operation runs before the form is initialized."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot run '{operation}' before the form is initialized")


class SubmittedValues(TypedDict):
    """Snapshot captured by a successful decode during submit."""

    encoded: dict[str, Any]
    decoded: Any


class FormState(TypedDict):
    """Complete state of one form instance.

    - values:                current encoded values, one entry per field
    - initial_values:        the values the form was initialized with
    - last_submitted_values: snapshot of the last successful decode, or None
    - touched:               per top-level field touched flag
    - submit_count:          number of submit attempts
    - dirty_fields:          paths whose value differs from initial_values
    """

    values: dict[str, Any]
    initial_values: dict[str, Any]
    last_submitted_values: SubmittedValues | None
    touched: dict[str, bool]
    submit_count: int
    dirty_fields: frozenset[str]


def _items_at(values: Any, array_path: str) -> list[Any]:
    items = get_nested_value(values, array_path)
    return list(items) if isinstance(items, (list, tuple)) else []


class FormOperations:
    """Pure state transforms bound to a form schema.

    Args:
        schema: The FormSchema whose fields define touched records and
            array item defaults.
    """

    def __init__(self, schema: FormSchema):
        self.schema = schema

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def create_initial_state(self, default_values: dict[str, Any]) -> FormState:
        """Create a fresh state whose values and initial values are ``default_values``."""
        return FormState(
            values=default_values,
            initial_values=default_values,
            last_submitted_values=None,
            touched=self.schema.touched_record(False),
            submit_count=0,
            dirty_fields=frozenset(),
        )

    def create_reset_state(self, state: FormState) -> FormState:
        """Return to the initial values, clearing touched, count, dirty and last submit."""
        return FormState(
            values=state["initial_values"],
            initial_values=state["initial_values"],
            last_submitted_values=None,
            touched=self.schema.touched_record(False),
            submit_count=0,
            dirty_fields=frozenset(),
        )

    def create_submit_state(self, state: FormState) -> FormState:
        """Mark every field touched and count one more submit attempt."""
        return FormState(
            **{
                **state,
                "touched": self.schema.touched_record(True),
                "submit_count": state["submit_count"] + 1,
            }
        )

    # -----------------------------------------------------------------
    # Value operations
    # -----------------------------------------------------------------

    def set_field_value(self, state: FormState, path: str, value: Any) -> FormState:
        """Write one value and recompute dirty paths under ``path``."""
        new_values = set_nested_value(state["values"], path, value)
        return FormState(
            **{
                **state,
                "values": new_values,
                "dirty_fields": recalculate_dirty_subtree(
                    state["dirty_fields"], state["initial_values"], new_values, path
                ),
            }
        )

    def set_form_values(self, state: FormState, values: dict[str, Any]) -> FormState:
        """Replace all values and recompute the whole dirty set."""
        return FormState(
            **{
                **state,
                "values": values,
                "dirty_fields": recalculate_dirty_subtree(
                    state["dirty_fields"], state["initial_values"], values, ""
                ),
            }
        )

    def set_field_touched(self, state: FormState, path: str, touched: bool) -> FormState:
        return FormState(
            **{**state, "touched": set_nested_value(state["touched"], path, touched)}
        )

    # -----------------------------------------------------------------
    # Array operations
    # -----------------------------------------------------------------

    def _with_items(self, state: FormState, array_path: str, new_items: list[Any]) -> FormState:
        return FormState(
            **{
                **state,
                "values": set_nested_value(state["values"], array_path, new_items),
                "dirty_fields": recalculate_dirty_fields_for_array(
                    state["dirty_fields"], state["initial_values"], array_path, new_items
                ),
            }
        )

    def append_array_item(
        self,
        state: FormState,
        array_path: str,
        item_type: Any = None,
        value: Any = MISSING,
    ) -> FormState:
        """Append ``value`` (or the item type's default) to the array at ``array_path``.

        When ``item_type`` is None the item rule is resolved from the schema.
        An explicit ``None`` is appended as is.
        """
        if value is MISSING:
            if item_type is None:
                item_type = self.schema.schema_for_path(f"{array_path}[0]")
            value = default_for(item_type)
        new_items = [*_items_at(state["values"], array_path), value]
        return self._with_items(state, array_path, new_items)

    def remove_array_item(self, state: FormState, array_path: str, index: int) -> FormState:
        """Remove the item at ``index``; an out-of-range index removes nothing."""
        items = _items_at(state["values"], array_path)
        new_items = [item for position, item in enumerate(items) if position != index]
        return self._with_items(state, array_path, new_items)

    def swap_array_items(
        self, state: FormState, array_path: str, index_a: int, index_b: int
    ) -> FormState:
        """Swap two items. Equal or out-of-range indices return ``state`` unchanged."""
        items = _items_at(state["values"], array_path)
        if index_a == index_b or not (0 <= index_a < len(items) and 0 <= index_b < len(items)):
            return state
        items[index_a], items[index_b] = items[index_b], items[index_a]
        return self._with_items(state, array_path, items)

    def move_array_item(
        self, state: FormState, array_path: str, from_index: int, to_index: int
    ) -> FormState:
        """Move one item. Equal or out-of-range indices return ``state`` unchanged."""
        items = _items_at(state["values"], array_path)
        if from_index == to_index or not (
            0 <= from_index < len(items) and 0 <= to_index < len(items)
        ):
            return state
        item = items.pop(from_index)
        items.insert(to_index, item)
        return self._with_items(state, array_path, items)

    # -----------------------------------------------------------------
    # Last submit
    # -----------------------------------------------------------------

    def revert_to_last_submit(self, state: FormState) -> FormState:
        """Restore the values of the last successful submit.

        No-op when nothing was submitted yet or the values already match.
        Dirty paths are recomputed against the initial values.
        """
        last = state["last_submitted_values"]
        if last is None or structurally_equal(state["values"], last["encoded"]):
            return state
        encoded = last["encoded"]
        return FormState(
            **{
                **state,
                "values": encoded,
                "dirty_fields": recalculate_dirty_subtree(
                    state["dirty_fields"], state["initial_values"], encoded, ""
                ),
            }
        )

    def has_changed_since_submit(self, state: FormState) -> bool:
        last = state["last_submitted_values"]
        if last is None:
            return False
        return not structurally_equal(state["values"], last["encoded"])

    def changed_since_submit_fields(self, state: FormState) -> frozenset[str]:
        """Leaf-level paths that differ from the last submitted values."""
        last = state["last_submitted_values"]
        if last is None:
            return frozenset()
        return recalculate_dirty_subtree(frozenset(), last["encoded"], state["values"], "")
