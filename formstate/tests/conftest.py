"""
Shared test fixtures and helpers for the formstate test suite.

Provides small schemas covering scalar fields, struct fields, array
fields and cross-field refinements, plus a SubmitRecorder that stands in
for the caller's submit action.
"""

import asyncio
from typing import Annotated, Any

import pytest
from pydantic import BaseModel, Field

from formstate.core.form_state import FormOperations
from formstate.core.schema import FormSchema, RefinementIssue, make_array_field, make_field

NonEmpty = Annotated[str, Field(min_length=1)]


class Item(BaseModel):
    name: NonEmpty
    qty: int = 1


class User(BaseModel):
    name: str
    age: int


class SubmitRecorder:
    """Records every decoded value it is called with.

    Tests get one through the ``recorder`` or ``make_recorder`` fixtures.

    Usage:
        recorder = make_recorder(delay=0.05)
        form = Form(schema, recorder)
        await form.submit()
        assert recorder.calls == 1
    """

    def __init__(self, delay: float = 0.0, error: Exception | None = None, result: Any = "ok"):
        self.delay = delay
        self.error = error
        self.result = result
        self.received: list[Any] = []
        self.active = 0
        self.max_active = 0

    @property
    def calls(self) -> int:
        return len(self.received)

    async def __call__(self, decoded: Any) -> Any:
        self.received.append(decoded)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            self.active -= 1


# --- Schemas ---


@pytest.fixture
def profile_schema() -> FormSchema:
    """Name, age and an array of items."""
    return FormSchema(
        form_id="Profile",
        fields=[
            make_field("name", NonEmpty),
            make_field("age", int),
            make_array_field("items", Item),
        ],
    )


@pytest.fixture
def user_schema() -> FormSchema:
    """A single struct-valued field."""
    return FormSchema(form_id="UserForm", fields=[make_field("user", User)])


@pytest.fixture
def password_schema() -> FormSchema:
    """Password and confirmation with a refinement naming the confirm field."""

    def passwords_match(decoded):
        if decoded.password != decoded.confirm:
            return RefinementIssue(path="confirm", message="Passwords must match")
        return None

    return FormSchema(
        form_id="Signup",
        fields=[make_field("password", NonEmpty), make_field("confirm", str)],
    ).refine(passwords_match)


@pytest.fixture
def range_schema() -> FormSchema:
    """Two bounds with a form-level refinement."""
    return FormSchema(
        form_id="Range",
        fields=[make_field("low", int), make_field("high", int)],
    ).refine(lambda decoded: None if decoded.low <= decoded.high else "Low must not exceed high")


@pytest.fixture
def profile_ops(profile_schema) -> FormOperations:
    return FormOperations(profile_schema)


@pytest.fixture
def recorder() -> SubmitRecorder:
    return SubmitRecorder()


@pytest.fixture
def make_recorder():
    """Factory for recorders with a delay, an error or a custom result.

    Usage:
        def test_slow(make_recorder):
            slow = make_recorder(delay=0.05)
    """
    return SubmitRecorder
