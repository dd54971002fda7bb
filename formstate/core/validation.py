"""
Validation error routing.

Turns a single decoder failure (a pydantic ``ValidationError``) into
per-path messages that field accessors can display. Each routed entry
also records where the failure came from:

- ``field``: the literal field at that path failed its own rule.
- ``refinement``: a cross-field predicate on the whole form failed. It is
  reported at "" unless the predicate named a field.

The first message seen for a path wins; later issues at the same path
are dropped.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from formstate.core.paths import to_path
from formstate.core.schema import REFINEMENT_ERROR_TYPE

# pydantic error types produced by a model-level validator on the whole form.
_ROOT_PREDICATE_ERROR_TYPES = {"value_error", "assertion_error"}


class ErrorSource(str, Enum):
    """Origin of a routed validation error."""

    FIELD = "field"
    REFINEMENT = "refinement"


class ErrorEntry(BaseModel):
    """A routed validation message and its source."""

    model_config = ConfigDict(frozen=True)

    message: str
    source: ErrorSource = ErrorSource.FIELD


class FormValidationError(Exception):
    """Raised when the form values fail to decode during submit."""

    def __init__(self, errors: dict[str, ErrorEntry], validation_error: ValidationError | None = None):
        self.errors = errors
        self.validation_error = validation_error
        summary = ", ".join(f"{path or '<form>'}: {entry.message}" for path, entry in errors.items())
        super().__init__(f"Form validation failed ({summary})")


# -----------------------------------------------------------------
# Issue helpers
# -----------------------------------------------------------------


def _issues(error: ValidationError | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(error, ValidationError):
        return error.errors()
    return list(error)


def _issue_path(issue: dict[str, Any]) -> str | None:
    """Resolve an issue to a path string; None when the location is unusable."""
    ctx = issue.get("ctx") or {}
    if issue.get("type") == REFINEMENT_ERROR_TYPE and ctx.get("field_path") is not None:
        return str(ctx["field_path"])
    loc = issue.get("loc", ())
    if not all(isinstance(segment, (str, int)) for segment in loc):
        return None
    return to_path(loc)


def _issue_source(issue: dict[str, Any]) -> ErrorSource:
    error_type = issue.get("type")
    if error_type == REFINEMENT_ERROR_TYPE:
        return ErrorSource.REFINEMENT
    if not issue.get("loc") and error_type in _ROOT_PREDICATE_ERROR_TYPES:
        return ErrorSource.REFINEMENT
    return ErrorSource.FIELD


# -----------------------------------------------------------------
# Routing
# -----------------------------------------------------------------


def extract_first_error(error: ValidationError | list[dict[str, Any]]) -> str | None:
    """Return the first issue message, or None if there are no issues."""
    issues = _issues(error)
    if not issues:
        return None
    return issues[0]["msg"]


def route_errors(error: ValidationError | list[dict[str, Any]]) -> dict[str, str]:
    """Map each field path to the first message reported for it.

    Root-level issues (empty path) and issues whose location cannot be
    turned into a path are skipped.

    Args:
        error: The decoder failure, or its list of issue dicts.

    Returns:
        {path: message} in first-seen order.
    """
    result: dict[str, str] = {}
    for issue in _issues(error):
        path = _issue_path(issue)
        if path and path not in result:
            result[path] = issue["msg"]
    return result


def route_errors_with_source(error: ValidationError | list[dict[str, Any]]) -> dict[str, ErrorEntry]:
    """Map each path (including "" for the form root) to its first ErrorEntry.

    Args:
        error: The decoder failure, or its list of issue dicts.

    Returns:
        {path: ErrorEntry} in first-seen order. The source of an entry is
        the source of the first issue at that path.
    """
    result: dict[str, ErrorEntry] = {}
    for issue in _issues(error):
        path = _issue_path(issue)
        if path is None or path in result:
            continue
        result[path] = ErrorEntry(message=issue["msg"], source=_issue_source(issue))
    return result
