"""
Schema validation shared by input and output checks.

A schema is one of:
- a pydantic BaseModel subclass (validated with model_validate)
- a JSON Schema document given as a dict (validated with jsonschema)
- any other type pydantic can adapt, e.g. dict[str, int] or Any
"""
import logging
from functools import lru_cache
from typing import Any

import jsonschema
from jsonschema.validators import validator_for
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

Schema = Any


class ValidationIssue(BaseModel):
    """One violated constraint."""
    path: str = Field(default="", description="Dotted location of the offending value")
    message: str = Field(..., description="What is wrong")
    type: str | None = Field(default=None, description="Machine-readable error type")


class ValidationOutcome(BaseModel):
    """Result of validating a value against a schema."""
    ok: bool
    value: Any = None
    issues: list[ValidationIssue] = Field(default_factory=list)


def is_model_schema(schema: Schema) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def is_json_schema(schema: Schema) -> bool:
    return isinstance(schema, dict)


def validate(schema: Schema, data: Any) -> ValidationOutcome:
    """
    Validate and coerce data against a schema.

    Args:
        schema: Declared schema
        data: Raw value to check

    Returns:
        ValidationOutcome with the typed value on success, issues on failure
    """
    if is_json_schema(schema):
        return _validate_json_schema(schema, data)

    try:
        if is_model_schema(schema):
            value = schema.model_validate(data)
        else:
            value = _adapter(schema).validate_python(data)
    except ValidationError as e:
        return ValidationOutcome(ok=False, issues=[
            ValidationIssue(
                path=".".join(str(part) for part in err["loc"]),
                message=err["msg"],
                type=err["type"]
            )
            for err in e.errors()
        ])

    return ValidationOutcome(ok=True, value=value)


def _validate_json_schema(schema: dict[str, Any], data: Any) -> ValidationOutcome:
    try:
        validator_cls = validator_for(schema)
        validator_cls.check_schema(schema)
    except jsonschema.SchemaError as e:
        logger.error(f"Invalid JSON schema: {e.message}")
        return ValidationOutcome(ok=False, issues=[
            ValidationIssue(message=f"invalid schema: {e.message}", type="schema_error")
        ])

    errors = sorted(validator_cls(schema).iter_errors(data), key=lambda err: list(err.absolute_path))
    if errors:
        return ValidationOutcome(ok=False, issues=[
            ValidationIssue(
                path=".".join(str(part) for part in err.absolute_path),
                message=err.message,
                type=str(err.validator)
            )
            for err in errors
        ])
    return ValidationOutcome(ok=True, value=data)


def _adapter(schema: Schema) -> TypeAdapter:
    try:
        return _cached_adapter(schema)
    except TypeError:
        # unhashable annotation
        return TypeAdapter(schema)


@lru_cache(maxsize=256)
def _cached_adapter(schema: Schema) -> TypeAdapter:
    return TypeAdapter(schema)


def to_jsonable(value: Any) -> Any:
    """Convert a validated value into plain JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return TypeAdapter(Any).dump_python(value, mode="json")


def json_schema(schema: Schema) -> dict[str, Any]:
    """Render a schema as a JSON Schema document."""
    if is_json_schema(schema):
        return schema
    if is_model_schema(schema):
        return schema.model_json_schema()
    return _adapter(schema).json_schema()
