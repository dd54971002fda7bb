"""
Environment configuration and logging setup.

Settings are read from the process environment after loading a ``.env``
file, if present:

    FORMSTATE_DEFAULT_MODE      onSubmit | onBlur | onChange (default onSubmit)
    FORMSTATE_DEFAULT_DEBOUNCE  duration for onChange, e.g. "300 millis"
    FORMSTATE_AUTO_SUBMIT       1/true/yes/on to auto-submit in the default mode
    FORMSTATE_LOG_LEVEL         logging level name (default INFO)
"""

import logging
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from formstate.core.mode import ParsedMode, ValidationTrigger, parse_mode
from formstate.core.utils import _is_truthy, parse_duration_ms

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class FormSettings(BaseModel):
    """Process-wide defaults for new forms."""

    default_mode: ValidationTrigger = Field(default=ValidationTrigger.ON_SUBMIT)
    default_debounce_ms: int | None = Field(default=None, ge=0)
    auto_submit: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{value}'")
        return level

    def mode(self) -> ParsedMode:
        """The default form mode these settings describe."""
        if self.default_mode == ValidationTrigger.ON_CHANGE and (
            self.auto_submit or self.default_debounce_ms is not None
        ):
            return parse_mode(
                {
                    "onChange": {
                        "debounce": self.default_debounce_ms or 0,
                        "autoSubmit": self.auto_submit,
                    }
                }
            )
        if self.default_mode == ValidationTrigger.ON_BLUR and self.auto_submit:
            return parse_mode({"onBlur": {"autoSubmit": True}})
        return parse_mode(self.default_mode.value)


def get_settings(env: dict[str, str] | None = None) -> FormSettings:
    """Build settings from ``env`` (default: ``.env`` plus ``os.environ``).

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value.
        ValueError: If the debounce duration cannot be parsed.
    """
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    values: dict[str, Any] = {
        "default_mode": env.get("FORMSTATE_DEFAULT_MODE", ValidationTrigger.ON_SUBMIT.value),
        "auto_submit": _is_truthy(env.get("FORMSTATE_AUTO_SUBMIT"), default=False),
        "log_level": env.get("FORMSTATE_LOG_LEVEL", "INFO"),
    }
    debounce = env.get("FORMSTATE_DEFAULT_DEBOUNCE")
    if debounce:
        values["default_debounce_ms"] = parse_duration_ms(debounce)
    return FormSettings(**values)


def configure_logging(settings: FormSettings | None = None) -> None:
    """Configure root logging with the package format and configured level."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
