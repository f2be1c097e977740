from datetime import date, datetime

from flask import request

from services.errors import ValidationError


def parse_day(value, field: str = "date") -> date:
    # Accept "2026-01-20" and full ISO timestamps; time of day is dropped
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required (YYYY-MM-DD)")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD")


def optional_day(value, field: str = "date"):
    if value in (None, ""):
        return None
    return parse_day(value, field)


def as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def require_int(data: dict, field: str) -> int:
    if data.get(field) in (None, ""):
        raise ValidationError(f"{field} is required")
    return as_int(data[field], field)


def json_body() -> dict:
    # Missing or unparsable bodies read as empty; anything but an object is rejected
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data
