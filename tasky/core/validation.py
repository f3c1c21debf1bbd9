"""Helpers turning pydantic validation failures into ValidationError."""

from typing import Any, Iterable, Mapping, Type, TypeVar

import pydantic
from pydantic import BaseModel

from .exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic/FastAPI error entries into ``{field, message}`` pairs."""
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append(
            {
                "field": ".".join(loc) or "body",
                "message": err.get("msg", "Invalid value"),
            }
        )
    return formatted


def summarize(details: list[dict[str, str]]) -> str:
    if not details:
        return "Validation failed"
    first = details[0]
    if first["field"] == "body":
        return first["message"]
    return f"{first['field']}: {first['message']}"


def validate_payload(model_cls: Type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model_cls``.

    Accepts an already-built instance of the model, a mapping, or None (treated
    as an empty body).

    Raises:
        ValidationError: If the data does not satisfy the schema.
    """
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data if data is not None else {})
    except pydantic.ValidationError as e:
        details = format_validation_errors(e.errors())
        raise ValidationError(summarize(details), details=details) from e
