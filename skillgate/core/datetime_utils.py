"""
Datetime helpers for timezone-aware timestamps.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current datetime in UTC.

    All services read the clock through this function so tests can patch it.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime object is timezone-aware (UTC).
    SQLite returns naive datetimes even for timezone-aware columns.

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds from start to end, never negative."""
    delta = ensure_timezone_aware(end) - ensure_timezone_aware(start)
    return max(0.0, delta.total_seconds())
