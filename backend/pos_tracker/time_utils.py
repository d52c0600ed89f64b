from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Business date for issuance bookkeeping (UTC)."""
    return utcnow().date()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD string (or the date part of an ISO datetime).

    - None / "" -> None
    - "2026-03-01T10:00:00Z" -> date(2026, 3, 1)
    """
    if value is None:
        return None
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def to_iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
