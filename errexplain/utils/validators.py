"""
errexplain/utils/validators.py — Safe parsing helpers
Never raise on bad external data: log and return None / a default.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


def safe_parse_json(text: str) -> Optional[dict[str, Any]]:
    """
    Safely parse JSON text. Returns None on failure (no exception raised).
    Logs the parse error for debugging.
    """
    text = text.strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.debug(f"JSON parse failed: {exc} | Text: {text[:200]!r}")
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_model_safe(
    model_class: Type[T],
    data: dict[str, Any],
    context: str = "",
) -> Optional[T]:
    """
    Parse and validate a dict into a Pydantic model. Returns None on validation failure.
    Logs the validation errors for debugging.
    """
    try:
        return model_class.model_validate(data)
    except ValidationError as exc:
        logger.error(
            f"Schema validation failed for {model_class.__name__} "
            f"(context: {context}): {exc}"
        )
        return None


def ensure_list(value: Any, field_name: str = "") -> list:
    """Ensure a value is a list. A bare string becomes a one-item list."""
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [value]
    logger.warning(f"Expected list for {field_name!r}, got {type(value).__name__}. Using [].")
    return []


def truncate(value: Optional[str], limit: int) -> str:
    return (value or "")[:limit]
