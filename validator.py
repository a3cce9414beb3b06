"""Structural validation of GitHub API payloads before they enter the pipeline."""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from errors import SchemaError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _describe(error: ValidationError) -> str:
    """Render the first violation as '<dotted.location>: <message>'."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{location}: {first['msg']}"


def validate_payload(payload: Any, shape: type[ModelT], source: str = "payload") -> ModelT:
    """Validate a decoded payload against a model, raising SchemaError on the first violation.

    Args:
        payload: Decoded JSON value.
        shape: Model describing the expected structure.
        source: Human-readable origin used in the error message (e.g. a request path).

    Returns:
        The typed, normalized model instance.
    """
    try:
        return shape.model_validate(payload)
    except ValidationError as e:
        message = f"Invalid {shape.__name__} from {source}: {_describe(e)}"
        logger.error("Schema violation: %s", message)
        raise SchemaError(message) from e


def decode_json(text: str, source: str = "payload") -> Any:
    """Decode a JSON response body, raising SchemaError if it is not JSON."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        message = f"Invalid JSON from {source}: {e}"
        logger.error("Schema violation: %s", message)
        raise SchemaError(message) from e
