# backend/dds/time_utils.py
"""
Timestamps are stored as naive UTC. Everything crossing the API boundary is
ISO-8601 with a trailing 'Z'.
"""
from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a list-filter bound.

    - None / "" -> None
    - "2025-03-01" -> midnight UTC, or 23:59:59.999999 with end_of_day
      (so a to_date covers the whole day)
    - "...Z" / "...+07:00" -> converted to UTC

    Raises ValueError for anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if end_of_day and "T" not in text and " " not in text:
        parsed = datetime.combine(parsed.date(), time.max)
    return _as_naive_utc(parsed)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = _as_naive_utc(dt)
    return dt.replace(microsecond=0).isoformat() + "Z"
