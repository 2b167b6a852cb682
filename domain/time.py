"""
Domain time utilities (pure).

Centralized timestamp validation and conversion helpers.

Behavior and error messages must remain consistent across the domain model:
every event, lot and ledger timestamp is a timezone-aware UTC datetime.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with or without a trailing 'Z') and
    bare dates, which are taken as midnight UTC. Naive values are assumed UTC.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_date(value: Any) -> Optional[date]:
    """Parse a birth date or similar calendar date; blank values become None."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])
