"""
Shared utility functions for the formstate package.
"""

import re
from datetime import timedelta

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")

_UNIT_TO_MS: dict[str, float] = {
    "": 1.0,
    "ms": 1.0,
    "milli": 1.0,
    "millis": 1.0,
    "millisecond": 1.0,
    "milliseconds": 1.0,
    "s": 1000.0,
    "sec": 1000.0,
    "secs": 1000.0,
    "second": 1000.0,
    "seconds": 1000.0,
    "m": 60_000.0,
    "min": 60_000.0,
    "mins": 60_000.0,
    "minute": 60_000.0,
    "minutes": 60_000.0,
}


def _is_truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_duration_ms(value: int | float | str | timedelta) -> int:
    """Parse a duration into whole milliseconds.

    Supports plain numbers (already milliseconds), ``timedelta`` objects,
    and strings such as "300 millis", "2 seconds", "1.5s" or "250ms".

    Args:
        value: The duration to parse.

    Returns:
        The duration in milliseconds.

    Raises:
        ValueError: If the value is negative or cannot be parsed.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, timedelta):
        millis = value.total_seconds() * 1000
    elif isinstance(value, (int, float)):
        millis = float(value)
    elif isinstance(value, str):
        match = _DURATION_PATTERN.match(value)
        if match is None:
            raise ValueError(f"Invalid duration: {value!r}")
        unit = match.group(2).lower()
        if unit not in _UNIT_TO_MS:
            raise ValueError(f"Unknown duration unit '{unit}' in {value!r}")
        millis = float(match.group(1)) * _UNIT_TO_MS[unit]
    else:
        raise ValueError(f"Invalid duration: {value!r}")

    if millis < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return int(round(millis))
