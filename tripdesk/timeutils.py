"""Datetime helpers.

All instants are stored as naive UTC datetimes so SQLite and PostgreSQL
compare them the same way.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_instant(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp (as sent by Calendly, e.g. 2030-01-01T10:00:00.000000Z).

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_naive_utc(value)
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    return as_naive_utc(dt)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored naive UTC datetime with an explicit Z suffix."""
    if dt is None:
        return None
    return as_naive_utc(dt).isoformat() + "Z"
