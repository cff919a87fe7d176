from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request

from app.chms.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?\d{7,15}$")


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def is_valid_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value))


def is_valid_phone(value: str | None) -> bool:
    """Optional leading +, then 7-15 digits (spaces and dashes ignored)."""
    return bool(value and _PHONE_RE.match(re.sub(r"[\s\-]", "", value)))


def truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD. Empty → None; malformed → ValueError."""
    if value is None or isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    return date.fromisoformat(s)


def parse_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    return int(value)


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e
    if not d.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return d


def field_date(payload: dict, key: str, label: str, errors: list[str]) -> date | None:
    """Read an optional date field, recording a message instead of raising."""
    try:
        return parse_date(payload.get(key))
    except (TypeError, ValueError):
        errors.append(f"{label} must be a date (YYYY-MM-DD).")
        return None


def field_int(payload: dict, key: str, label: str, errors: list[str]) -> int | None:
    try:
        return parse_int(payload.get(key))
    except (TypeError, ValueError):
        errors.append(f"{label} must be a whole number.")
        return None


def field_decimal(payload: dict, key: str, label: str, errors: list[str]) -> Decimal | None:
    try:
        return parse_decimal(payload.get(key))
    except (TypeError, ValueError):
        errors.append(f"{label} must be a number.")
        return None


def json_payload() -> dict:
    """Request body as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def required_int(payload: dict, key: str, label: str, errors: list[str]) -> int | None:
    before = len(errors)
    value = field_int(payload, key, label, errors)
    if value is None and len(errors) == before:
        errors.append(f"{label} is required.")
    return value


def required_decimal(payload: dict, key: str, label: str, errors: list[str]) -> Decimal | None:
    before = len(errors)
    value = field_decimal(payload, key, label, errors)
    if value is None and len(errors) == before:
        errors.append(f"{label} is required.")
    return value


def required_date(payload: dict, key: str, label: str, errors: list[str]) -> date | None:
    before = len(errors)
    value = field_date(payload, key, label, errors)
    if value is None and len(errors) == before:
        errors.append(f"{label} is required.")
    return value
