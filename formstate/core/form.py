"""
The form facade.

``Form`` wires one schema to its state and error cells, the pure state
operations, the submission coordinator, the auto-submit scheduler and the
field accessor cache. A bindings layer holds a Form and calls into it on
user events.

Mutating operations raise FormNotInitializedError before ``initialize``;
``reset``, ``revert_to_last_submit`` and ``set_values`` are no-ops then.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from formstate.core.field_cache import FieldAccessors, FieldAtomCache
from formstate.core.form_state import (
    FormNotInitializedError,
    FormOperations,
    FormState,
    SubmittedValues,
)
from formstate.core.mode import FormMode, ParsedMode, parse_mode
from formstate.core.paths import MISSING, get_nested_value
from formstate.core.scheduler import AutoSubmitScheduler
from formstate.core.schema import FormSchema
from formstate.core.settings import get_settings
from formstate.core.store import Cell
from formstate.core.submission import (
    SubmissionCoordinator,
    SubmitAction,
    SubmitOutcome,
    SubmitStatus,
)
from formstate.core.validation import ErrorEntry

logger = logging.getLogger(__name__)


class Form:
    """A single live form instance.

    Args:
        schema: The form's fields and refinements.
        on_submit: Action called with the decoded model on a successful
            submit. May be a plain function or a coroutine function.
        mode: Validation/auto-submit mode. Defaults to the configured
            ``FORMSTATE_DEFAULT_MODE``.
        loop: Event loop for debounce timers and automatic submits.
            Defaults to the loop running when a timer is armed.
    """

    def __init__(
        self,
        schema: FormSchema,
        on_submit: SubmitAction,
        mode: FormMode = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.schema = schema
        self.mode: ParsedMode = parse_mode(mode) if mode is not None else get_settings().mode()
        self.operations = FormOperations(schema)

        self.state_cell: Cell[FormState | None] = Cell(None, name=f"{schema.form_id}.state")
        self.errors_cell: Cell[dict[str, ErrorEntry]] = Cell({}, name=f"{schema.form_id}.errors")

        self.coordinator = SubmissionCoordinator(
            schema, self.operations, self.state_cell, self.errors_cell, on_submit
        )
        self.scheduler = AutoSubmitScheduler(self.mode, self.coordinator.submit, loop=loop)
        self.cache = FieldAtomCache(
            schema,
            self.operations,
            self.state_cell,
            self.errors_cell,
            self.mode,
            on_blur=self.scheduler.on_blur,
            loop=loop,
        )
        self._unsubscribe = self.state_cell.subscribe(self._on_state_change)
        self._replacing = False
        self._closed = False

    def _on_state_change(self, new: FormState | None, old: FormState | None) -> None:
        if new is None or old is None or new["values"] is old["values"]:
            return
        self.cache.revalidate_changed(old["values"], new["values"])
        if not self._replacing:
            self.scheduler.on_value_change()

    def _replace_state(self, state: FormState) -> None:
        """Swap in a whole new state without scheduling an auto-submit."""
        self._replacing = True
        try:
            self.state_cell.write(state)
        finally:
            self._replacing = False

    def _update(self, operation: str, fn: Callable[[FormState], FormState]) -> None:
        if self.state_cell.read() is None:
            raise FormNotInitializedError(operation)
        self.state_cell.update(fn)

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def initialize(self, default_values: dict[str, Any] | None = None, keep_alive: bool = False) -> None:
        """Create the initial state.

        Args:
            default_values: Encoded starting values. Defaults to the
                schema's per-field defaults.
            keep_alive: Keep the existing state if the form is already
                initialized.
        """
        if keep_alive and self.state_cell.read() is not None:
            logger.debug("Form '%s' kept alive; skipping initialization", self.schema.form_id)
            return
        values = default_values if default_values is not None else self.schema.default_values()
        self.errors_cell.write({})
        self._replace_state(self.operations.create_initial_state(values))
        self.cache.reset_validations()
        logger.debug("Form '%s' initialized with %d field(s)", self.schema.form_id, len(values))

    def close(self) -> None:
        """Cancel timers, stop auto-submit and drop cached accessors."""
        if self._closed:
            return
        self._closed = True
        self.scheduler.close()
        self.cache.clear()
        self._unsubscribe()
        logger.debug("Form '%s' closed", self.schema.form_id)

    # -----------------------------------------------------------------
    # Derived state
    # -----------------------------------------------------------------

    @property
    def state(self) -> FormState | None:
        return self.state_cell.read()

    @property
    def is_initialized(self) -> bool:
        return self.state_cell.read() is not None

    @property
    def values(self) -> dict[str, Any] | None:
        state = self.state
        return state["values"] if state is not None else None

    @property
    def dirty_fields(self) -> frozenset[str]:
        state = self.state
        return state["dirty_fields"] if state is not None else frozenset()

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields)

    @property
    def submit_count(self) -> int:
        state = self.state
        return state["submit_count"] if state is not None else 0

    @property
    def touched(self) -> dict[str, Any]:
        state = self.state
        return state["touched"] if state is not None else {}

    @property
    def errors(self) -> dict[str, ErrorEntry]:
        return self.errors_cell.read()

    @property
    def root_error(self) -> str | None:
        """Message of the form-level error, if the last submit produced one."""
        entry = self.errors.get("")
        return entry.message if entry is not None else None

    @property
    def last_submitted_values(self) -> SubmittedValues | None:
        state = self.state
        return state["last_submitted_values"] if state is not None else None

    @property
    def has_changed_since_submit(self) -> bool:
        state = self.state
        return state is not None and self.operations.has_changed_since_submit(state)

    @property
    def changed_since_submit_fields(self) -> frozenset[str]:
        state = self.state
        if state is None:
            return frozenset()
        return self.operations.changed_since_submit_fields(state)

    @property
    def submit_status(self) -> SubmitStatus:
        return self.coordinator.status

    @property
    def submit_outcome(self) -> SubmitOutcome | None:
        """How the last submit attempt ended, or None before the first one."""
        return self.coordinator.outcome

    # -----------------------------------------------------------------
    # Fields
    # -----------------------------------------------------------------

    def field(self, path: str) -> FieldAccessors:
        """Accessors for ``path`` (created on first use)."""
        return self.cache.get_or_create(path)

    def get_value(self, path: str) -> Any:
        state = self.state
        return get_nested_value(state["values"], path) if state is not None else None

    def set_value(self, path: str, value: Any) -> None:
        """Write ``value`` at ``path``. A callable receives the current value."""
        state = self.state
        if state is None:
            raise FormNotInitializedError("set_value")
        if callable(value):
            value = value(get_nested_value(state["values"], path))
        self._update("set_value", lambda s: self.operations.set_field_value(s, path, value))

    def set_values(self, values: dict[str, Any]) -> None:
        """Replace all values. No-op before initialization."""
        if self.state is None:
            return
        self.errors_cell.write({})
        self.state_cell.update(lambda s: self.operations.set_form_values(s, values))

    def set_touched(self, path: str, touched: bool = True) -> None:
        self._update("set_touched", lambda s: self.operations.set_field_touched(s, path, touched))

    def blur(self, path: str) -> None:
        if self.state is None:
            raise FormNotInitializedError("blur")
        FieldAccessors(path, self.cache).blur()

    # -----------------------------------------------------------------
    # Arrays
    # -----------------------------------------------------------------

    def append_item(self, array_path: str, value: Any = MISSING) -> None:
        self._update(
            "append_item",
            lambda s: self.operations.append_array_item(s, array_path, value=value),
        )

    def remove_item(self, array_path: str, index: int) -> None:
        self._update(
            "remove_item", lambda s: self.operations.remove_array_item(s, array_path, index)
        )

    def swap_items(self, array_path: str, index_a: int, index_b: int) -> None:
        self._update(
            "swap_items",
            lambda s: self.operations.swap_array_items(s, array_path, index_a, index_b),
        )

    def move_item(self, array_path: str, from_index: int, to_index: int) -> None:
        self._update(
            "move_item",
            lambda s: self.operations.move_array_item(s, array_path, from_index, to_index),
        )

    # -----------------------------------------------------------------
    # Reset / revert / submit
    # -----------------------------------------------------------------

    def reset(self) -> None:
        """Return to the initial values. No-op before initialization."""
        state = self.state
        if state is None:
            return
        self.errors_cell.write({})
        self._replace_state(self.operations.create_reset_state(state))
        self.cache.reset_validations()
        self.scheduler.cancel()

    def revert_to_last_submit(self) -> None:
        """Restore the last successfully submitted values. No-op before initialization."""
        state = self.state
        if state is None:
            return
        reverted = self.operations.revert_to_last_submit(state)
        if reverted is state:
            return
        self.errors_cell.write({})
        self.state_cell.write(reverted)

    async def submit(self) -> Any:
        """Run one submit attempt, after any automatic submit in flight.

        Raises:
            FormNotInitializedError: Before initialization.
            FormValidationError: If the values fail to decode.
        """
        if self.state is None:
            raise FormNotInitializedError("submit")
        return await self.scheduler.submit_now()
