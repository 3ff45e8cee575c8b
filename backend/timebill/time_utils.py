from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional


# All timestamps are stored as naive datetimes that mean UTC.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read an ISO-8601 timestamp from client input.

    Offsets (including a ``Z`` suffix) are converted to UTC; a timestamp
    without an offset is taken to already be UTC. Blank input gives None and
    malformed input raises ValueError.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """``YYYY-MM-DD``; a full timestamp is reduced to its UTC calendar day."""
    text = (value or "").strip()
    if not text:
        return None
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_iso_datetime(text).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 string ending in ``Z`` (naive input counts as UTC)."""
    if dt is None:
        return None
    stamp = _as_naive_utc(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Inclusive datetime window covering whole days start..end."""
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, rounded half away from zero."""
    seconds = (end - start).total_seconds()
    if seconds >= 0:
        return int(seconds + 0.5)
    return -int(-seconds + 0.5)
