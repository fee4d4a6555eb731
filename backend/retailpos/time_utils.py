from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """Like parse_iso_datetime, but a date-only value ("2025-01-31") means the end of that day."""
    end_dt = parse_iso_datetime(value)
    if end_dt is not None and len(value.strip()) == 10:
        end_dt = datetime.combine(end_dt.date(), time.max)
    return end_dt


def resolve_date_range(
    start: Optional[str],
    end: Optional[str],
    *,
    default_days: int = 30,
) -> tuple[datetime, datetime]:
    """
    Resolve a reporting window.

    Missing start defaults to `default_days` before end. A date-only end
    ("2025-01-31") covers the whole day.
    """
    end_dt = parse_range_end(end)
    if end_dt is None:
        end_dt = utcnow()

    start_dt = parse_iso_datetime(start)
    if start_dt is None:
        start_dt = datetime.combine((end_dt - timedelta(days=default_days)).date(), time.min)

    if start_dt > end_dt:
        raise ValueError("start must be before end")
    return start_dt, end_dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if isinstance(dt, date) and not isinstance(dt, datetime):
        return dt.isoformat()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
