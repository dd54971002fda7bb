"""
Integration tests for the Form facade.

Tests cover:
- initialize with schema defaults, explicit values and keep_alive
- Derived state: dirty_fields, is_dirty, submit_count, root_error
- set_value with values and updater callables
- set_values / reset / revert_to_last_submit clearing errors
- Array operations through the form
- Uninitialized behavior: loud mutations, silent resets
- Submit success and failure end to end
- Auto-submit on change and on blur, at most one in flight
- close() cancelling pending auto-submit
- Manual submits sharing the in-flight guard with auto-submit
- Synchronous writes in debounced modes without a running loop
"""

import asyncio

import pytest

from formstate.core.form import Form
from formstate.core.form_state import FormNotInitializedError
from formstate.core.submission import SubmitOutcome, SubmitStatus
from formstate.core.validation import ErrorSource, FormValidationError


VALUES = {"name": "Ann", "age": 30, "items": [{"name": "A", "qty": 1}]}


@pytest.fixture
def form(profile_schema, recorder) -> Form:
    form = Form(profile_schema, recorder, mode="onSubmit")
    form.initialize(VALUES)
    return form


# =============================================================
# Test: Initialization
# =============================================================


class TestInitialize:
    def test_schema_defaults(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode="onSubmit")
        form.initialize()
        assert form.values == {"name": "", "age": 0, "items": []}
        assert form.submit_count == 0
        assert form.is_dirty is False

    def test_keep_alive_keeps_state(self, form):
        form.set_value("age", 31)
        form.initialize({"name": "x", "age": 1, "items": []}, keep_alive=True)
        assert form.values["age"] == 31

    def test_reinitialize_replaces_state(self, form):
        form.set_value("age", 31)
        form.initialize(VALUES)
        assert form.values is VALUES
        assert form.dirty_fields == frozenset()

    def test_uninitialized_reads(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode="onSubmit")
        assert form.is_initialized is False
        assert form.values is None
        assert form.dirty_fields == frozenset()
        assert form.submit_count == 0
        assert form.has_changed_since_submit is False
        assert form.changed_since_submit_fields == frozenset()
        assert form.get_value("name") is None


# =============================================================
# Test: Mutations
# =============================================================


class TestMutations:
    def test_set_value(self, form):
        form.set_value("items[0].name", "B")
        assert form.get_value("items[0].name") == "B"
        assert form.dirty_fields == {"items[0].name"}
        assert form.is_dirty is True

    def test_set_value_with_updater(self, form):
        form.set_value("age", lambda age: age + 1)
        assert form.values["age"] == 31

    def test_set_values_clears_errors(self, form):
        form.errors_cell.write({"": object()})
        form.set_values({**VALUES, "name": "Bo"})
        assert form.errors == {}
        assert form.dirty_fields == {"name"}

    def test_set_touched_and_blur(self, form):
        form.set_touched("name")
        form.blur("age")
        assert form.touched == {"name": True, "age": True, "items": False}

    def test_blur_does_not_cache_accessors(self, form):
        form.blur("name")
        assert form.touched["name"] is True
        assert "name" not in form.cache
        assert len(form.cache) == 0

    def test_append_explicit_none(self, form):
        form.append_item("items", None)
        assert form.values["items"] == [{"name": "A", "qty": 1}, None]

    def test_array_operations(self, form):
        form.append_item("items", {"name": "B", "qty": 2})
        form.append_item("items")
        assert [item["name"] for item in form.values["items"]] == ["A", "B", ""]
        form.swap_items("items", 0, 1)
        form.move_item("items", 2, 0)
        assert [item["name"] for item in form.values["items"]] == ["", "B", "A"]
        form.remove_item("items", 0)
        assert [item["name"] for item in form.values["items"]] == ["B", "A"]
        assert form.dirty_fields == {"items", "items[0]", "items[1]"}

    def test_swap_out_of_range_keeps_state(self, form):
        before = form.state
        form.swap_items("items", 0, 4)
        assert form.state is before

    def test_reset(self, form):
        form.set_value("name", "Bo")
        form.field("age").validate("old")
        form.reset()
        assert form.values is VALUES
        assert form.dirty_fields == frozenset()
        assert form.field("age").error is None


class TestUninitialized:
    @pytest.fixture
    def blank(self, profile_schema, recorder) -> Form:
        return Form(profile_schema, recorder, mode="onSubmit")

    @pytest.mark.parametrize(
        "call",
        [
            lambda f: f.set_value("name", "x"),
            lambda f: f.set_touched("name"),
            lambda f: f.blur("name"),
            lambda f: f.append_item("items"),
            lambda f: f.remove_item("items", 0),
            lambda f: f.swap_items("items", 0, 1),
            lambda f: f.move_item("items", 0, 1),
            lambda f: f.field("name").set_value("x"),
        ],
    )
    def test_mutations_raise(self, blank, call):
        with pytest.raises(FormNotInitializedError):
            call(blank)

    def test_resets_are_noops(self, blank):
        blank.reset()
        blank.revert_to_last_submit()
        blank.set_values({"name": "x", "age": 1, "items": []})
        assert blank.state is None

    @pytest.mark.asyncio
    async def test_submit_raises(self, blank):
        with pytest.raises(FormNotInitializedError):
            await blank.submit()


# =============================================================
# Test: Submit
# =============================================================


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success(self, form, recorder):
        assert await form.submit() == "ok"
        assert recorder.calls == 1
        assert form.submit_count == 1
        assert form.submit_outcome == SubmitOutcome.SUCCEEDED
        assert form.submit_status == SubmitStatus.IDLE
        assert form.last_submitted_values["encoded"] is VALUES
        assert form.has_changed_since_submit is False

    @pytest.mark.asyncio
    async def test_failure_shows_errors(self, form, recorder):
        form.set_value("name", "")
        with pytest.raises(FormValidationError):
            await form.submit()
        assert recorder.calls == 0
        assert form.submit_count == 1
        assert form.field("name").visible_error == "String should have at least 1 character"
        assert form.last_submitted_values is None

    @pytest.mark.asyncio
    async def test_root_error(self, range_schema, recorder):
        form = Form(range_schema, recorder, mode="onSubmit")
        form.initialize({"low": 5, "high": 1})
        with pytest.raises(FormValidationError):
            await form.submit()
        assert form.root_error == "Low must not exceed high"
        assert form.errors[""].source == ErrorSource.REFINEMENT

    @pytest.mark.asyncio
    async def test_refinement_on_named_field(self, password_schema, recorder):
        form = Form(password_schema, recorder, mode="onSubmit")
        form.initialize({"password": "abc", "confirm": "abd"})
        with pytest.raises(FormValidationError):
            await form.submit()
        assert form.root_error is None
        assert form.field("confirm").visible_error == "Passwords must match"
        form.field("confirm").change("abc")
        assert form.field("confirm").error is None
        await form.submit()
        assert recorder.calls == 1

    @pytest.mark.asyncio
    async def test_revert_round_trip(self, form):
        form.set_value("name", "Bo")
        await form.submit()
        v1 = form.values
        form.set_value("age", 99)
        form.append_item("items")
        assert form.has_changed_since_submit is True
        assert "age" in form.changed_since_submit_fields

        form.revert_to_last_submit()
        assert form.values == v1
        assert form.dirty_fields == {"name"}
        assert form.has_changed_since_submit is False

    @pytest.mark.asyncio
    async def test_set_value_keeps_stored_errors(self, form):
        form.set_value("name", "")
        with pytest.raises(FormValidationError):
            await form.submit()
        form.set_value("age", 40)
        assert "name" in form.errors


# =============================================================
# Test: Field validation modes
# =============================================================


class TestValidationModes:
    def test_on_change_validates_programmatic_writes(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode="onChange")
        form.initialize(VALUES)
        field = form.field("age")
        form.set_value("age", "old")
        assert field.error is not None
        form.set_value("age", 3)
        assert field.error is None

    def test_on_submit_does_not_validate_writes(self, form):
        field = form.field("age")
        form.set_value("age", "old")
        assert field.error is None


# =============================================================
# Test: Auto-submit
# =============================================================


class TestAutoSubmit:
    @pytest.mark.asyncio
    async def test_debounced_auto_submit(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 20, "autoSubmit": True}})
        form.initialize(VALUES)
        form.field("name").change("B")
        form.field("name").change("Bo")
        form.field("name").change("Bob")
        assert recorder.calls == 0

        await asyncio.sleep(0.06)
        await form.scheduler.wait_idle()
        assert recorder.calls == 1
        assert recorder.received[0].name == "Bob"
        form.close()

    @pytest.mark.asyncio
    async def test_touched_change_does_not_auto_submit(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 10, "autoSubmit": True}})
        form.initialize(VALUES)
        form.set_touched("name")
        await asyncio.sleep(0.03)
        assert recorder.calls == 0
        form.close()

    @pytest.mark.asyncio
    async def test_blur_auto_submit(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onBlur": {"autoSubmit": True}})
        form.initialize(VALUES)
        form.blur("name")
        await form.scheduler.wait_idle()
        assert recorder.calls == 1
        assert form.submit_count == 1
        form.close()

    @pytest.mark.asyncio
    async def test_at_most_one_in_flight(self, profile_schema, make_recorder):
        slow = make_recorder(delay=0.05)
        form = Form(profile_schema, slow, mode={"onBlur": {"autoSubmit": True}})
        form.initialize(VALUES)
        form.blur("name")
        await asyncio.sleep(0.01)
        form.blur("age")

        await form.scheduler.wait_idle()
        assert slow.calls == 2
        assert slow.max_active == 1
        assert form.submit_count == 2
        form.close()

    @pytest.mark.asyncio
    async def test_manual_submit_blocks_auto_submit(self, profile_schema, make_recorder):
        slow = make_recorder(delay=0.1)
        form = Form(profile_schema, slow, mode={"onChange": {"debounce": 10, "autoSubmit": True}})
        form.initialize(VALUES)
        manual = asyncio.create_task(form.submit())
        await asyncio.sleep(0)
        form.set_value("name", "Bob")

        await asyncio.sleep(0.05)
        assert slow.calls == 1
        assert form.scheduler.pending is True

        assert await manual == "ok"
        await form.scheduler.wait_idle()
        assert slow.calls == 2
        assert slow.max_active == 1
        assert slow.received[1].name == "Bob"
        form.close()

    @pytest.mark.asyncio
    async def test_manual_submit_waits_for_auto_submit(self, profile_schema, make_recorder):
        slow = make_recorder(delay=0.05)
        form = Form(profile_schema, slow, mode={"onBlur": {"autoSubmit": True}})
        form.initialize(VALUES)
        form.blur("name")
        assert form.scheduler.in_flight is True

        assert await form.submit() == "ok"
        assert slow.calls == 2
        assert slow.max_active == 1
        assert form.submit_count == 2
        form.close()

    @pytest.mark.asyncio
    async def test_invalid_auto_submit_routes_errors(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onBlur": {"autoSubmit": True}})
        form.initialize({**VALUES, "name": ""})
        form.blur("name")
        await form.scheduler.wait_idle()
        assert recorder.calls == 0
        assert isinstance(form.scheduler.last_error, FormValidationError)
        assert form.field("name").visible_error is not None
        form.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 15, "autoSubmit": True}})
        form.initialize(VALUES)
        form.field("name").change("Bob")
        form.close()
        await asyncio.sleep(0.05)
        assert recorder.calls == 0
        assert len(form.cache) == 0

    @pytest.mark.asyncio
    async def test_reset_cancels_pending_timer(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 15, "autoSubmit": True}})
        form.initialize(VALUES)
        form.field("name").change("Bob")
        form.reset()
        await asyncio.sleep(0.05)
        assert recorder.calls == 0
        form.close()


# =============================================================
# Test: Writes outside a running event loop
# =============================================================


class TestWithoutRunningLoop:
    def test_debounced_validation_runs_immediately(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 50}})
        form.initialize(VALUES)
        field = form.field("age")
        form.set_value("age", "old")
        assert form.values["age"] == "old"
        assert field.validating is False
        assert field.error is not None
        form.close()

    def test_debounced_auto_submit_is_dropped(self, profile_schema, recorder):
        form = Form(profile_schema, recorder, mode={"onChange": {"debounce": 50, "autoSubmit": True}})
        form.initialize(VALUES)
        form.field("name").change("Bob")
        assert form.values["name"] == "Bob"
        assert form.scheduler.dispatch_count == 0
        assert form.scheduler.in_flight is False
        assert recorder.calls == 0
        form.close()

    def test_explicit_loop_runs_auto_submit(self, profile_schema, recorder):
        loop = asyncio.new_event_loop()
        try:
            form = Form(
                profile_schema,
                recorder,
                mode={"onChange": {"debounce": 10, "autoSubmit": True}},
                loop=loop,
            )
            form.initialize(VALUES)
            form.set_value("name", "Bob")
            assert form.scheduler.timer_scheduled is True

            loop.run_until_complete(asyncio.sleep(0.05))
            loop.run_until_complete(form.scheduler.wait_idle())
            assert recorder.calls == 1
            assert recorder.received[0].name == "Bob"
            form.close()
        finally:
            loop.close()
