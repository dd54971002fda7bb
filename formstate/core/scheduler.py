"""
Debounce and auto-submit scheduling.

``Debouncer`` keeps a single trailing timer on the running event loop;
each call restarts it and only the most recent one fires. ``close()``
cancels the timer and makes later calls no-ops.

``AutoSubmitScheduler`` decides when a form submits itself:

- onChange + autoSubmit: every value change restarts the debounce timer,
  and the timer requests a submit when it fires.
- onBlur + autoSubmit: every blur requests a submit immediately.

At most one submit runs at a time. A request made while one is in flight
sets a pending flag; when the in-flight submit settles, one fresh submit
is fired for any number of pending requests. Every dispatch carries a
monotonically increasing request id stamped with the current generation,
and ``cancel()`` bumps the generation so requests issued before it are
discarded. Caller-requested submits go through ``submit_now`` and share
the same in-flight guard.

Timers run on the loop passed in, or on the running loop. With neither,
no timer can fire: a debounced callback runs right away and an automatic
submit request is dropped with a warning.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from formstate.core.mode import ParsedMode
from formstate.core.validation import FormValidationError

logger = logging.getLogger(__name__)


def _resolve_loop(loop: asyncio.AbstractEventLoop | None) -> asyncio.AbstractEventLoop | None:
    if loop is not None:
        return loop
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Debouncer:
    """Trailing-edge debounce for a plain callback.

    Args:
        callback: Called with the arguments of the most recent ``call``.
        delay_ms: Quiet period in milliseconds. None or 0 calls through
            immediately.
        loop: Loop to schedule timers on. Defaults to the running loop.
    """

    def __init__(
        self,
        callback: Callable[..., Any],
        delay_ms: int | None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.callback = callback
        self.delay_ms = delay_ms
        self.loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def call(self, *args: Any) -> None:
        if self._closed:
            return
        if not self.delay_ms:
            self.callback(*args)
            return
        self.cancel()
        loop = _resolve_loop(self.loop)
        if loop is None:
            logger.debug("No event loop for the debounce timer; calling through")
            self.callback(*args)
            return
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire, args)
        logger.debug("Debounce timer scheduled in %d ms", self.delay_ms)

    def _fire(self, args: tuple[Any, ...]) -> None:
        self._handle = None
        if self._closed:
            return
        self.callback(*args)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Debounce timer cancelled")

    def close(self) -> None:
        self.cancel()
        self._closed = True


class AutoSubmitScheduler:
    """Fires automatic submits with at most one in flight.

    Args:
        mode: The parsed form mode.
        submit: Coroutine function running one submit attempt.
        loop: Loop to run timers and automatic submits on. Defaults to the
            running loop.
    """

    def __init__(
        self,
        mode: ParsedMode,
        submit: Callable[[], Awaitable[Any]],
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.mode = mode
        self.submit = submit
        self.loop = loop

        delay = mode.debounce_ms if mode.auto_submit_on_change else None
        self._debouncer = Debouncer(self._on_timer, delay, loop=loop)

        self._next_request_id = 0
        self._last_dispatched_id = 0
        self._generation = 0
        self._in_flight: asyncio.Task | None = None
        self._pending = False
        self._closed = False

        self.dispatch_count = 0
        self.last_error: BaseException | None = None

    # -----------------------------------------------------------------
    # Triggers
    # -----------------------------------------------------------------

    def on_value_change(self) -> None:
        if self.mode.auto_submit_on_change:
            self._debouncer.call(self._generation)

    def _on_timer(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Discarding debounce fire from cancelled generation %d", generation)
            return
        self.request_submit()

    def on_blur(self, path: str) -> None:
        if self.mode.auto_submit_on_blur:
            logger.debug("Blur on '%s' requests auto-submit", path)
            self.request_submit()

    def request_submit(self) -> None:
        """Fire a submit now, or mark one pending if a submit is running."""
        if self._closed:
            return
        if self._in_flight is not None:
            self._pending = True
            logger.debug("Submit in flight; request marked pending")
            return
        self._next_request_id += 1
        self._dispatch(self._next_request_id, self._generation)

    def _dispatch(self, request_id: int, generation: int) -> None:
        if generation != self._generation or request_id <= self._last_dispatched_id:
            logger.debug("Discarding stale submit request #%d", request_id)
            return
        loop = _resolve_loop(self.loop)
        if loop is None:
            logger.warning("No event loop; auto-submit request #%d dropped", request_id)
            return
        self._last_dispatched_id = request_id
        self.dispatch_count += 1
        self._in_flight = loop.create_task(self._run(request_id))

    async def _run(self, request_id: int) -> None:
        logger.debug("Auto-submit request #%d started", request_id)
        try:
            await self.submit()
            self.last_error = None
        except FormValidationError as exc:
            self.last_error = exc
            logger.warning("Auto-submit request #%d failed validation: %s", request_id, exc)
        except Exception as exc:
            self.last_error = exc
            logger.exception("Auto-submit request #%d raised", request_id)
        finally:
            self._settle()

    def _settle(self) -> None:
        self._in_flight = None
        if self._pending and not self._closed:
            self._pending = False
            self.request_submit()

    async def submit_now(self) -> Any:
        """Run a caller-requested submit once nothing else is in flight.

        Automatic requests made meanwhile are marked pending and flushed
        after it settles.

        Returns:
            Whatever the submit returned.

        Raises:
            Exception: Anything the submit raised, unchanged.
        """
        while self._in_flight is not None:
            await asyncio.wait([self._in_flight])
        task = asyncio.get_running_loop().create_task(self.submit())
        self._in_flight = task
        try:
            return await task
        finally:
            if self._in_flight is task:
                self._settle()

    # -----------------------------------------------------------------
    # State and teardown
    # -----------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def timer_scheduled(self) -> bool:
        return self._debouncer.scheduled

    def cancel(self) -> None:
        """Drop the debounce timer and any pending request."""
        self._debouncer.cancel()
        self._pending = False
        self._generation += 1

    async def wait_idle(self) -> None:
        """Wait until no submit is in flight and none is pending."""
        while self._in_flight is not None:
            await asyncio.wait([self._in_flight])

    def close(self) -> None:
        """Cancel timers and stop dispatching. A running submit is left to finish."""
        self.cancel()
        self._debouncer.close()
        self._closed = True
