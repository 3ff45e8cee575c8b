from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns of a model a client may write.

    ``writable_fields`` is the allowlist for any payload; ``required_on_create``
    must be present (and non-blank) when a row is being created.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


TIME_ENTRY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"task_id", "start_at", "end_at", "note", "billable"}),
    required_on_create=frozenset({"task_id", "start_at", "end_at"}),
)


def _to_int(name: str, value: Any, coltype) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text and text.lstrip("-").isdigit():
            return int(text)
    raise ValidationError(f"{name}: expected a whole number")


def _to_bool(name: str, value: Any, coltype) -> bool:
    if isinstance(value, bool):
        return value
    flag = value.strip().lower() if isinstance(value, str) else None
    if flag not in ("true", "false"):
        raise ValidationError(f"{name}: expected true or false")
    return flag == "true"


def _to_datetime(name: str, value: Any, coltype) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{name}: expected an ISO-8601 timestamp")
    return parsed


def _to_text(name: str, value: Any, coltype) -> str:
    text = str(value).strip()
    if coltype.length and len(text) > coltype.length:
        raise ValidationError(f"{name}: at most {coltype.length} characters")
    return text


# First match wins; Text is a String subclass.
_COERCERS: list[tuple[type, Callable[[str, Any, Any], Any]]] = [
    (Integer, _to_int),
    (Boolean, _to_bool),
    (DateTime, _to_datetime),
    (String, _to_text),
]


def coerce_column_value(column, value: Any) -> Any:
    """Convert a JSON value to the Python type ``column`` stores."""
    for coltype, convert in _COERCERS:
        if isinstance(column.type, coltype):
            return convert(column.key, value, column.type)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into column values for ``model``.

    Keys outside the policy allowlist are rejected, values are coerced by
    column type and NOT NULL / blank rules come from the column definitions.
    With ``partial=False`` the policy's required fields must all be present.
    """
    body = payload if payload is not None else {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    columns = {col.key: col for col in model.__mapper__.columns}

    rejected = sorted(k for k in body if k not in policy.writable_fields or k not in columns)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if body.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for key, raw in body.items():
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} may not be null")
            cleaned[key] = None
            continue
        value = coerce_column_value(column, raw)
        if value == "" and not column.nullable:
            raise ValidationError(f"{key} may not be blank")
        cleaned[key] = value
    return cleaned


def require_int(value: Any, field: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} is required and must be an integer")


def require_date(value: Any, field: str, *, required: bool = True) -> date | None:
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return parse_iso_date(value)
    except (AttributeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date")


def parse_bool_arg(value: str | None) -> bool | None:
    """Query-string tri-state: 'true' / 'false' / absent."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ValidationError("Boolean filters must be 'true' or 'false'")


def clamp_limit(value: int | None, default: int, maximum: int) -> int:
    """Page size from ``?limit=``: missing means ``default``, always 1..maximum."""
    if value is None:
        return default
    return max(1, min(value, maximum))
