"""
Form schema definition and the combined decoder.

These Pydantic models describe which fields a form has and how their
encoded values are decoded. Each field carries a type pydantic can
validate; the combined decoder is a pydantic model generated from the
field list, with cross-field refinements attached as model validators.
"""

import types
from collections.abc import Callable, Sequence
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Literal, Union, get_args, get_origin

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    create_model,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from formstate.core.paths import split_path, to_path

# Error type carried by every refinement failure raised by the decoder.
REFINEMENT_ERROR_TYPE = "form_refinement"

_PATH_CHARACTERS = {".", "[", "]"}


# --- Enums ---


class FieldKind(str, Enum):
    """Supported field definition kinds."""

    SCALAR = "field"
    ARRAY = "array"


# --- Field Definitions ---


def _check_key(key: str) -> str:
    if any(char in key for char in _PATH_CHARACTERS):
        raise ValueError(f"Field key '{key}' must not contain '.', '[' or ']'")
    if key.startswith("_"):
        raise ValueError(f"Field key '{key}' must not start with an underscore")
    return key


class FieldDef(BaseModel):
    """A scalar field: its key and the type its value decodes to."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["field"] = "field"
    key: str = Field(..., min_length=1, description="Unique field key")
    type: Any = Field(..., description="Decoder rule (any pydantic-validatable type)")

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        return _check_key(value)


class ArrayFieldDef(BaseModel):
    """An array field whose items each decode to ``item_type``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    key: str = Field(..., min_length=1, description="Unique field key")
    item_type: Any = Field(..., description="Decoder rule for each item")

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        return _check_key(value)


AnyFieldDef = Annotated[FieldDef | ArrayFieldDef, Field(discriminator="kind")]


def make_field(key: str, type_: Any) -> FieldDef:
    """Create a scalar field definition."""
    return FieldDef(key=key, type=type_)


def make_array_field(key: str, item_type: Any) -> ArrayFieldDef:
    """Create an array field definition."""
    return ArrayFieldDef(key=key, item_type=item_type)


# --- Refinements ---


class RefinementIssue(BaseModel):
    """A cross-field failure attributed to a specific field path."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Field path the failure is reported on")
    message: str = Field(..., min_length=1)

    @field_validator("path", mode="before")
    @classmethod
    def normalize_path(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return to_path(value)
        return value


# A refinement receives the decoded model and returns None/True when the
# values are acceptable, a message for a form-level failure, or a
# RefinementIssue naming the field to report on.
Refinement = Callable[[Any], "bool | str | RefinementIssue | None"]


def _make_refinement_check(predicate: Refinement) -> Callable[[Any], Any]:
    def check(self):
        outcome = predicate(self)
        if outcome is None or outcome is True:
            return self
        if outcome is False:
            raise PydanticCustomError(REFINEMENT_ERROR_TYPE, "Invalid form values")
        if isinstance(outcome, str):
            raise PydanticCustomError(REFINEMENT_ERROR_TYPE, outcome)
        if isinstance(outcome, RefinementIssue):
            raise PydanticCustomError(
                REFINEMENT_ERROR_TYPE,
                outcome.message,
                {"field_path": outcome.path},
            )
        raise TypeError(f"Refinement returned unsupported value: {outcome!r}")

    return check


# --- Defaults ---


def _unwrap(annotation: Any) -> Any:
    """Strip Annotated and Optional wrappers down to the core type."""
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
        elif origin in (Union, types.UnionType):
            non_none = [arg for arg in get_args(annotation) if arg is not type(None)]
            if not non_none:
                return annotation
            annotation = non_none[0]
        else:
            return annotation


def _field_default(info: Any) -> Any:
    if not info.is_required():
        return info.get_default(call_default_factory=True)
    return default_for(info.annotation)


def default_for(schema: Any) -> Any:
    """Return the encoded default value for a decoder rule.

    Strings default to "", numbers to 0, booleans to False, sequences to
    an empty list and models to a dict of their per-field defaults.
    Anything unrecognized defaults to "".
    """
    schema = _unwrap(schema)
    origin = get_origin(schema)

    if origin is Literal:
        return get_args(schema)[0]
    if origin in (list, tuple, set, frozenset, Sequence) or schema in (list, tuple):
        return []
    if not isinstance(schema, type):
        return ""

    if issubclass(schema, bool):
        return False
    if issubclass(schema, Enum):
        return next(iter(schema)).value
    if issubclass(schema, (int, float)):
        return 0
    if issubclass(schema, str):
        return ""
    if issubclass(schema, BaseModel):
        return {name: _field_default(info) for name, info in schema.model_fields.items()}
    return ""


# --- Top-Level Form Schema ---


class FormSchema(BaseModel):
    """The ordered record of field definitions plus cross-field refinements.

    Builder methods never mutate; they return a new schema.
    """

    model_config = ConfigDict(frozen=True)

    form_id: str = Field(
        default="Form",
        min_length=1,
        description="Name used for the generated decoder model",
    )
    fields: list[AnyFieldDef] = Field(
        default_factory=list,
        description="Field definitions in declaration order",
    )
    refinements: list[Any] = Field(
        default_factory=list,
        description="Cross-field predicates, applied in order after fields decode",
    )

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "FormSchema":
        """Field keys must be unique."""
        seen: set[str] = set()
        for field in self.fields:
            if field.key in seen:
                raise ValueError(f"Duplicate field key: '{field.key}'")
            seen.add(field.key)
        for refinement in self.refinements:
            if not callable(refinement):
                raise ValueError(f"Refinement must be callable, got {refinement!r}")
        return self

    # -----------------------------------------------------------------
    # Builder
    # -----------------------------------------------------------------

    def add_field(self, field: FieldDef | ArrayFieldDef) -> "FormSchema":
        """Return a schema with ``field`` added (replacing a same-key field in place)."""
        fields = list(self.fields)
        for index, existing in enumerate(fields):
            if existing.key == field.key:
                fields[index] = field
                break
        else:
            fields.append(field)
        return FormSchema(form_id=self.form_id, fields=fields, refinements=self.refinements)

    def merge(self, other: "FormSchema") -> "FormSchema":
        """Combine fields and refinements of both schemas; ``other`` wins on key clash."""
        merged = self
        for field in other.fields:
            merged = merged.add_field(field)
        return FormSchema(
            form_id=self.form_id,
            fields=merged.fields,
            refinements=[*self.refinements, *other.refinements],
        )

    def refine(self, predicate: Refinement) -> "FormSchema":
        """Return a schema with an extra cross-field refinement."""
        return FormSchema(
            form_id=self.form_id,
            fields=self.fields,
            refinements=[*self.refinements, predicate],
        )

    # -----------------------------------------------------------------
    # Field lookup
    # -----------------------------------------------------------------

    @property
    def keys(self) -> list[str]:
        return [field.key for field in self.fields]

    def get_field(self, key: str) -> FieldDef | ArrayFieldDef | None:
        """Look up a field definition by key."""
        for field in self.fields:
            if field.key == key:
                return field
        return None

    def schema_for_path(self, path: str) -> Any | None:
        """Resolve the decoder rule for the value at ``path``.

        ``items[0].name`` resolves through the array's item model to its
        ``name`` field. Returns None when the path cannot be resolved.
        """
        segments = split_path(path)
        if not segments or not isinstance(segments[0], str):
            return None
        field = self.get_field(segments[0])
        if field is None:
            return None

        current: Any = list[field.item_type] if field.kind == FieldKind.ARRAY else field.type
        for segment in segments[1:]:
            core = _unwrap(current)
            if isinstance(segment, int):
                if get_origin(core) not in (list, tuple, Sequence):
                    return None
                args = get_args(core)
                if not args:
                    return None
                current = args[0]
            else:
                if not (isinstance(core, type) and issubclass(core, BaseModel)):
                    return None
                info = core.model_fields.get(segment)
                if info is None:
                    return None
                if info.metadata:
                    current = Annotated[(info.annotation, *info.metadata)]
                else:
                    current = info.annotation
        return current

    # -----------------------------------------------------------------
    # Defaults
    # -----------------------------------------------------------------

    def default_values(self) -> dict[str, Any]:
        """Encoded defaults for every field, in declaration order."""
        result: dict[str, Any] = {}
        for field in self.fields:
            if field.kind == FieldKind.ARRAY:
                result[field.key] = []
            else:
                result[field.key] = default_for(field.type)
        return result

    def touched_record(self, value: bool) -> dict[str, bool]:
        """A touched map with every field set to ``value``."""
        return {field.key: value for field in self.fields}

    # -----------------------------------------------------------------
    # Decoder
    # -----------------------------------------------------------------

    def build_model(self) -> type[BaseModel]:
        """Generate the pydantic model that decodes the whole form."""
        field_definitions: dict[str, Any] = {}
        for field in self.fields:
            if field.kind == FieldKind.ARRAY:
                field_definitions[field.key] = (list[field.item_type], ...)
            else:
                field_definitions[field.key] = (field.type, ...)

        validators = {
            f"refinement_{index}": model_validator(mode="after")(_make_refinement_check(fn))
            for index, fn in enumerate(self.refinements)
        }
        return create_model(self.form_id, __validators__=validators, **field_definitions)

    @cached_property
    def model(self) -> type[BaseModel]:
        return self.build_model()

    def decode(self, values: Any) -> BaseModel:
        """Decode encoded form values.

        Raises:
            pydantic.ValidationError: If any field or refinement fails.
        """
        return self.model.model_validate(values)
