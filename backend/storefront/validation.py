from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import request

from .errors import ValidationError
from .time_utils import parse_iso_datetime


def json_body() -> dict:
    """Request JSON object, or {} when the body is empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def strict_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Accept ints and plain digit strings; reject floats, bools and scientific
    notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        number = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def optional_int(value: Any, field: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return strict_int(value, field, minimum=minimum)


def int_arg(name: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    number = strict_int(raw, name, minimum=minimum)
    if maximum is not None:
        number = min(number, maximum)
    return number


def datetime_arg(name: str) -> datetime | None:
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def bool_arg(name: str) -> bool:
    return (request.args.get(name) or "").lower() in ("1", "true", "yes")


def datetime_field(data: dict, field: str) -> datetime | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
