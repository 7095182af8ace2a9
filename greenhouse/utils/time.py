"""UTC timestamp helpers.

Measurements, actions and events all carry aware UTC datetimes; the store and
the wire keep them as ISO-8601 strings ending in ``+00:00``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Current UTC time as ISO-8601, optionally truncated with *timespec*."""
    return utc_now().isoformat(timespec=timespec) if timespec else utc_now().isoformat()


def to_iso(value: datetime | None) -> str | None:
    return None if value is None else _as_utc(value).isoformat()


def coerce_datetime(value: Any) -> datetime | None:
    """
    Parse a datetime or ISO-8601 string (``Z`` suffix allowed) into aware UTC.

    Returns None for anything that is not a datetime or a parseable string, so
    callers can turn a bad query argument into a validation error.
    """
    if isinstance(value, datetime):
        return _as_utc(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None
