"""Timestamp helpers shared by the local store and the sync engine."""

from datetime import datetime, timezone
from typing import Optional, Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as a fixed-width ISO-8601 UTC string.

    Always emits microseconds so that string order matches time order,
    which the SQLite delta queries rely on.

    Example:
        >>> format_timestamp(datetime(2025, 1, 1, tzinfo=timezone.utc))
        '2025-01-01T00:00:00.000000+00:00'
    """
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO timestamp string to an aware UTC datetime.

    Returns None for empty or unparsable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    value = value.strip()
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(dt)
