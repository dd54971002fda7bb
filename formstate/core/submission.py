"""
Submission coordination.

One submit attempt runs Idle -> Decoding -> Submitting -> Idle, and a
decode failure goes straight back to Idle. How the attempt ended is kept
separately as the outcome:

1. Snapshot the current values and clear the stored errors.
2. Decode the values with the form schema.
3. On a decode failure, route and store the errors, mark every field
   touched, count the attempt and raise FormValidationError.
4. On success, mark every field touched, count the attempt, record the
   last submitted snapshot and hand the decoded value to the submit action.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from formstate.core.form_state import (
    FormNotInitializedError,
    FormOperations,
    FormState,
    SubmittedValues,
)
from formstate.core.schema import FormSchema
from formstate.core.store import Cell
from formstate.core.validation import (
    ErrorEntry,
    FormValidationError,
    route_errors_with_source,
)

logger = logging.getLogger(__name__)

SubmitAction = Callable[[Any], Any | Awaitable[Any]]


class SubmitStatus(str, Enum):
    """Phase of the submit attempt currently running."""

    IDLE = "idle"
    DECODING = "decoding"
    SUBMITTING = "submitting"


class SubmitOutcome(str, Enum):
    """How the most recent submit attempt ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubmissionCoordinator:
    """Runs decode -> route -> commit for each submit attempt.

    Args:
        schema: Schema used to decode the values.
        operations: Pure state operations for the same schema.
        state_cell: Cell holding the FormState (None before initialization).
        errors_cell: Cell holding the routed error map.
        on_submit: Action receiving the decoded value. May be sync or async.
    """

    def __init__(
        self,
        schema: FormSchema,
        operations: FormOperations,
        state_cell: Cell[FormState | None],
        errors_cell: Cell[dict[str, ErrorEntry]],
        on_submit: SubmitAction,
    ):
        self.schema = schema
        self.operations = operations
        self.state_cell = state_cell
        self.errors_cell = errors_cell
        self.on_submit = on_submit

        self.status = SubmitStatus.IDLE
        self.outcome: SubmitOutcome | None = None
        self.last_result: Any = None
        self.last_error: BaseException | None = None

    async def submit(self) -> Any:
        """Run one submit attempt.

        Returns:
            Whatever the submit action returned.

        Raises:
            FormNotInitializedError: If the form has no state yet.
            FormValidationError: If the values fail to decode.
            Exception: Anything the submit action raised, unchanged.
        """
        state = self.state_cell.read()
        if state is None:
            raise FormNotInitializedError("submit")

        try:
            return await self._attempt(state["values"])
        finally:
            self.status = SubmitStatus.IDLE

    async def _attempt(self, values: dict[str, Any]) -> Any:
        self.errors_cell.write({})
        self.status = SubmitStatus.DECODING
        self.last_error = None

        try:
            decoded = self.schema.decode(values)
        except ValidationError as exc:
            errors = route_errors_with_source(exc)
            self.errors_cell.write(errors)
            self.state_cell.update(self._submit_state)
            self.outcome = SubmitOutcome.FAILED
            self.last_error = FormValidationError(errors, exc)
            logger.info(
                "Submit #%d failed validation: %d error path(s)",
                self.state_cell.read()["submit_count"],
                len(errors),
            )
            raise self.last_error from exc

        def commit(current: FormState) -> FormState:
            submitted = self._submit_state(current)
            return FormState(
                **{
                    **submitted,
                    "last_submitted_values": SubmittedValues(encoded=values, decoded=decoded),
                }
            )

        self.state_cell.update(commit)
        logger.info("Submit #%d decoded successfully", self.state_cell.read()["submit_count"])

        self.status = SubmitStatus.SUBMITTING
        try:
            result = self.on_submit(decoded)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self.outcome = SubmitOutcome.FAILED
            self.last_error = exc
            raise

        self.outcome = SubmitOutcome.SUCCEEDED
        self.last_result = result
        return result

    def _submit_state(self, state: FormState | None) -> FormState:
        if state is None:
            raise FormNotInitializedError("submit")
        return self.operations.create_submit_state(state)
