"""
State store primitives.

- ``read`` / ``write`` address a single path inside a FormState's values,
  always returning a new state on write.
- ``Cell`` is the observable container the form keeps its state in. A
  write propagates synchronously to every current subscriber, in
  subscription order, before ``write`` returns.
"""

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from formstate.core.paths import get_nested_value, set_nested_value

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read(state: dict, path: str) -> Any:
    """Return the value at ``path`` inside ``state["values"]``."""
    return get_nested_value(state["values"], path)


def write(state: dict, path: str, value: Any) -> dict:
    """Return a copy of ``state`` whose values hold ``value`` at ``path``."""
    return {**state, "values": set_nested_value(state["values"], path, value)}


class Cell(Generic[T]):
    """A single observable value.

    Subscribers are called with ``(new, old)`` after each write that
    replaces the value with a different object. Writing the identical
    object is a no-op, so replacing state with itself never notifies.

    Args:
        initial: The starting value.
        name: Label used in debug logging.
    """

    def __init__(self, initial: T, name: str = "cell"):
        self._value: T = initial
        self._name = name
        self._subscribers: list[Callable[[T, T], None]] = []

    def read(self) -> T:
        return self._value

    def write(self, value: T) -> None:
        old = self._value
        if value is old:
            return
        self._value = value
        logger.debug("Cell '%s' updated (%d subscribers)", self._name, len(self._subscribers))
        for callback in list(self._subscribers):
            callback(value, old)

    def update(self, fn: Callable[[T], T]) -> None:
        """Read-modify-replace in one step."""
        self.write(fn(self._value))

    def subscribe(self, callback: Callable[[T, T], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
