# Overview: Fixed-point helpers for monetary and quantity arithmetic.

"""
All money in timebill is ``decimal.Decimal``. Binary floats are rejected at
the boundary so rounding drift cannot enter the totals.

Rounding policy: ROUND_HALF_UP to two places, applied per line first, then to
subtotal, tax and total independently.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from .errors import ValidationError


MONEY_PLACES = 2
RATE_PLACES = 4
ZERO = Decimal("0.00")
SECONDS_PER_HOUR = Decimal(3600)


def round_money(value: Decimal, places: int = MONEY_PLACES) -> Decimal:
    """The only sanctioned rounding function for money and quantities."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def parse_decimal(value, field: str, *, places: int = MONEY_PLACES, minimum: Decimal | None = None) -> Decimal:
    """
    Coerce JSON input to Decimal.

    Accepts int, str, Decimal. Floats are accepted only through their shortest
    repr (``str(0.1) == "0.1"``) so a JSON ``12.5`` still means exactly 12.5.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if result != round_money(result, places):
        raise ValidationError(f"{field} supports at most {places} decimal places")
    return result


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return round_money(sum(values, ZERO))


def hours_from_seconds(seconds: int) -> Decimal:
    """Exact hours; callers round once at the end, never per entry."""
    return Decimal(seconds) / SECONDS_PER_HOUR


def format_money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(round_money(value))
