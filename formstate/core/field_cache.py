"""
Per-path field accessors and their cache.

A ``FieldAccessors`` object gives a bindings layer everything one field
needs: value, initial value, touched, dirty, validating and the error to
show. It closes over the path string and the shared form cells only, so an
accessor keeps working after its cache entry is evicted.

``FieldAtomCache`` creates accessors lazily and keeps them in an explicit
arena keyed by path. Holders call ``acquire``/``release``; the entry is
evicted when the last holder releases it.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter, ValidationError

from formstate.core.form_state import FormNotInitializedError, FormOperations, FormState
from formstate.core.mode import ParsedMode, ValidationTrigger
from formstate.core.paths import MISSING, get_nested_value, is_path_or_parent_dirty
from formstate.core.scheduler import Debouncer
from formstate.core.schema import FormSchema
from formstate.core.store import Cell
from formstate.core.validation import ErrorEntry, extract_first_error

logger = logging.getLogger(__name__)


class FieldAccessors:
    """Read/write accessors for the field at ``path``."""

    def __init__(self, path: str, cache: "FieldAtomCache"):
        self.path = path
        self._cache = cache

    def __repr__(self) -> str:
        return f"FieldAccessors({self.path!r})"

    # --- Value ---

    @property
    def value(self) -> Any:
        state = self._cache.state_cell.read()
        if state is None:
            return None
        return get_nested_value(state["values"], self.path)

    @property
    def initial_value(self) -> Any:
        state = self._cache.state_cell.read()
        if state is None:
            return None
        return get_nested_value(state["initial_values"], self.path)

    def set_value(self, value: Any) -> None:
        """Write a value with leaf-level dirty recompute."""
        operations = self._cache.operations
        self._cache.update_state(
            "set_value", lambda state: operations.set_field_value(state, self.path, value)
        )

    # --- Touched / dirty ---

    @property
    def touched(self) -> bool:
        state = self._cache.state_cell.read()
        if state is None:
            return False
        return get_nested_value(state["touched"], self.path) is True

    def set_touched(self, touched: bool = True) -> None:
        operations = self._cache.operations
        self._cache.update_state(
            "set_touched",
            lambda state: operations.set_field_touched(state, self.path, touched),
        )

    @property
    def is_dirty(self) -> bool:
        state = self._cache.state_cell.read()
        if state is None:
            return False
        return is_path_or_parent_dirty(state["dirty_fields"], self.path)

    # --- Validation ---

    @property
    def validating(self) -> bool:
        return self._cache.validation_scheduled(self.path)

    def validate(self, value: Any = MISSING) -> str | None:
        """Validate ``value`` (default: the current value) right away.

        Returns:
            The first error message, or None when the value is valid.
        """
        if value is MISSING:
            value = self.value
        return self._cache.validate_path(self.path, value)

    def request_validation(self, value: Any = MISSING) -> None:
        """Validate now, or after the debounce delay when the mode debounces."""
        if value is MISSING:
            value = self.value
        self._cache.request_validation(self.path, value)

    @property
    def validation_error(self) -> str | None:
        """Message from the most recent live validation, if it failed."""
        return self._cache.validation_result(self.path)

    # --- Errors ---

    @property
    def error_entry(self) -> ErrorEntry | None:
        """The submit-routed entry stored for this path."""
        return self._cache.errors_cell.read().get(self.path)

    @property
    def error(self) -> str | None:
        live = self.validation_error
        if live is not None:
            return live
        entry = self.error_entry
        return entry.message if entry is not None else None

    @property
    def visible_error(self) -> str | None:
        """The error, but only once the field is touched or a submit happened."""
        state = self._cache.state_cell.read()
        if state is None:
            return None
        if self.touched or state["submit_count"] > 0:
            return self.error
        return None

    # --- User events ---

    def change(self, value: Any) -> None:
        """Handle a user edit: write, drop the stored error, validate on change."""
        self.set_value(value)
        self._cache.drop_error(self.path)
        if self._cache.mode.validation == ValidationTrigger.ON_CHANGE:
            self.request_validation(value)

    def blur(self) -> None:
        """Handle a blur: mark touched, validate on blur, notify auto-submit."""
        self.set_touched(True)
        if self._cache.mode.validation == ValidationTrigger.ON_BLUR:
            self.request_validation()
        if self._cache.on_blur is not None:
            self._cache.on_blur(self.path)


class FieldAtomCache:
    """Explicit arena of FieldAccessors keyed by path.

    Args:
        schema: Schema used to resolve per-field validation rules.
        operations: Pure state operations for the same schema.
        state_cell: Cell holding the FormState (None before initialization).
        errors_cell: Cell holding the submit-routed error map.
        mode: The parsed form mode.
        on_blur: Called with the path after an accessor handles a blur.
        loop: Loop for debounced validation timers. Defaults to the
            running loop.
    """

    def __init__(
        self,
        schema: FormSchema,
        operations: FormOperations,
        state_cell: Cell[FormState | None],
        errors_cell: Cell[dict[str, ErrorEntry]],
        mode: ParsedMode,
        on_blur: Callable[[str], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.schema = schema
        self.operations = operations
        self.state_cell = state_cell
        self.errors_cell = errors_cell
        self.mode = mode
        self.on_blur = on_blur
        self.loop = loop

        self._entries: dict[str, FieldAccessors] = {}
        self._holders: dict[str, int] = {}
        self._validations: dict[str, str | None] = {}
        self._debouncers: dict[str, Debouncer] = {}
        self._adapters: dict[str, TypeAdapter | None] = {}

    # -----------------------------------------------------------------
    # Arena
    # -----------------------------------------------------------------

    def get_or_create(self, path: str) -> FieldAccessors:
        accessors = self._entries.get(path)
        if accessors is None:
            accessors = FieldAccessors(path, self)
            self._entries[path] = accessors
            logger.debug("Created accessors for '%s'", path)
        return accessors

    def acquire(self, path: str) -> FieldAccessors:
        """Get the accessors for ``path`` and register one more holder."""
        accessors = self.get_or_create(path)
        self._holders[path] = self._holders.get(path, 0) + 1
        return accessors

    def release(self, path: str) -> None:
        """Drop one holder; the entry is evicted when none remain."""
        count = self._holders.get(path, 0) - 1
        if count > 0:
            self._holders[path] = count
        else:
            self.evict(path)

    def evict(self, path: str) -> None:
        """Drop the entry for ``path`` along with its validation state."""
        self._entries.pop(path, None)
        self._holders.pop(path, None)
        self._validations.pop(path, None)
        self._adapters.pop(path, None)
        debouncer = self._debouncers.pop(path, None)
        if debouncer is not None:
            debouncer.close()
        logger.debug("Evicted accessors for '%s'", path)

    def clear(self) -> None:
        for debouncer in self._debouncers.values():
            debouncer.close()
        self._debouncers.clear()
        self._entries.clear()
        self._holders.clear()
        self._validations.clear()
        self._adapters.clear()

    def holders(self, path: str) -> int:
        return self._holders.get(path, 0)

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -----------------------------------------------------------------
    # State helpers
    # -----------------------------------------------------------------

    def update_state(self, operation: str, fn: Callable[[FormState], FormState]) -> None:
        """Apply ``fn`` to the current state, failing loudly before initialization."""
        if self.state_cell.read() is None:
            raise FormNotInitializedError(operation)
        self.state_cell.update(fn)

    def drop_error(self, path: str) -> None:
        errors = self.errors_cell.read()
        if path in errors:
            self.errors_cell.write({key: entry for key, entry in errors.items() if key != path})

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def _adapter_for(self, path: str) -> TypeAdapter | None:
        if path not in self._adapters:
            rule = self.schema.schema_for_path(path)
            self._adapters[path] = TypeAdapter(rule) if rule is not None else None
        return self._adapters[path]

    def validate_path(self, path: str, value: Any) -> str | None:
        """Validate one value and record the result for ``path``."""
        adapter = self._adapter_for(path)
        message = None
        if adapter is not None:
            try:
                adapter.validate_python(value)
            except ValidationError as exc:
                message = extract_first_error(exc)
        self._validations[path] = message
        return message

    def request_validation(self, path: str, value: Any) -> None:
        if not self.mode.debounces_validation:
            self.validate_path(path, value)
            return
        debouncer = self._debouncers.get(path)
        if debouncer is None:
            debouncer = Debouncer(
                lambda v: self.validate_path(path, v), self.mode.debounce_ms, loop=self.loop
            )
            self._debouncers[path] = debouncer
        debouncer.call(value)

    def validation_scheduled(self, path: str) -> bool:
        debouncer = self._debouncers.get(path)
        return debouncer is not None and debouncer.scheduled

    def validation_result(self, path: str) -> str | None:
        return self._validations.get(path)

    def reset_validations(self) -> None:
        """Forget every live validation result and cancel scheduled validations."""
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        self._validations.clear()

    def revalidate_changed(self, old_values: Any, new_values: Any) -> None:
        """Re-validate cached fields whose value changed outside a user edit."""
        if self.mode.validation == ValidationTrigger.ON_SUBMIT:
            return
        for path, accessors in list(self._entries.items()):
            new_value = get_nested_value(new_values, path)
            if get_nested_value(old_values, path) is new_value:
                continue
            if self.mode.validation == ValidationTrigger.ON_CHANGE or accessors.touched:
                self.request_validation(path, new_value)
