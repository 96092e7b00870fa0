"""
Datetime utilities for Bridge API services.
"""
from datetime import datetime, timezone
from typing import Optional


def make_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware (UTC if naive).

    Args:
        dt: A datetime object that may or may not have timezone info

    Returns:
        The same datetime with UTC timezone if it was naive,
        or the original timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string from storage into an aware datetime."""
    if not value:
        return None
    return make_aware(datetime.fromisoformat(value))


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage (ISO-8601, UTC-normalized)."""
    if dt is None:
        return None
    return make_aware(dt).astimezone(timezone.utc).isoformat()


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from earlier to later (floored)."""
    delta = make_aware(later) - make_aware(earlier)
    return int(delta.total_seconds() // 86400)
