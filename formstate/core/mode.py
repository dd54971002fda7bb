"""
Form mode configuration.

Controls when field validation runs and whether the form submits
itself. Accepted inputs:

- ``"onSubmit"`` (default), ``"onBlur"``, ``"onChange"``
- ``{"onChange": {"debounce": <duration>, "autoSubmit": bool}}``
- ``{"onBlur": {"autoSubmit": True}}``
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formstate.core.utils import parse_duration_ms


class ValidationTrigger(str, Enum):
    """When per-field validation is triggered."""

    ON_SUBMIT = "onSubmit"
    ON_BLUR = "onBlur"
    ON_CHANGE = "onChange"


class ParsedMode(BaseModel):
    """Normalized mode with resolved values."""

    model_config = ConfigDict(frozen=True)

    validation: ValidationTrigger = Field(
        default=ValidationTrigger.ON_SUBMIT,
        description="When field validation runs",
    )
    debounce_ms: int | None = Field(
        default=None,
        ge=0,
        description="Debounce delay in milliseconds (onChange only)",
    )
    auto_submit: bool = Field(
        default=False,
        description="Whether the form submits itself after change/blur",
    )

    @property
    def auto_submit_on_change(self) -> bool:
        return self.auto_submit and self.validation == ValidationTrigger.ON_CHANGE

    @property
    def auto_submit_on_blur(self) -> bool:
        return self.auto_submit and self.validation == ValidationTrigger.ON_BLUR

    @property
    def debounces_validation(self) -> bool:
        """Field validation is debounced only when it is not driving auto-submit."""
        return (
            self.validation == ValidationTrigger.ON_CHANGE
            and self.debounce_ms is not None
            and not self.auto_submit
        )


FormMode = str | Mapping[str, Any] | ParsedMode | None


def parse_mode(mode: FormMode = None) -> ParsedMode:
    """Parse a mode setting into a ParsedMode.

    Args:
        mode: A mode string, an options mapping, an already parsed mode,
            or None for "onSubmit".

    Returns:
        The normalized ParsedMode.

    Raises:
        ValueError: If the mode is not one of the supported shapes.
    """
    if mode is None:
        return ParsedMode()
    if isinstance(mode, ParsedMode):
        return mode

    if isinstance(mode, str):
        try:
            trigger = ValidationTrigger(mode)
        except ValueError:
            raise ValueError(
                f"Unknown mode '{mode}'. Choose from: {[t.value for t in ValidationTrigger]}"
            )
        return ParsedMode(validation=trigger)

    if not isinstance(mode, Mapping) or len(mode) != 1:
        raise ValueError(f"Mode must be a string or a single-key mapping, got {mode!r}")

    if "onBlur" in mode:
        options = mode["onBlur"] or {}
        if options.get("autoSubmit") is not True:
            raise ValueError("Object form of 'onBlur' requires {'autoSubmit': True}")
        return ParsedMode(validation=ValidationTrigger.ON_BLUR, auto_submit=True)

    if "onChange" in mode:
        options = mode["onChange"] or {}
        if "debounce" not in options:
            raise ValueError("Object form of 'onChange' requires a 'debounce' duration")
        return ParsedMode(
            validation=ValidationTrigger.ON_CHANGE,
            debounce_ms=parse_duration_ms(options["debounce"]),
            auto_submit=options.get("autoSubmit") is True,
        )

    raise ValueError(f"Unknown mode key '{next(iter(mode))}'")
