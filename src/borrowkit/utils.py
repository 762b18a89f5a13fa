"""Timestamp helpers shared across borrowkit."""

from datetime import date, datetime, timezone
from typing import Optional, Union

Timestamp = Union[str, date, datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
    """Parse an ISO date/datetime (or date object) into an aware UTC datetime.

    Date-only values are anchored at midnight UTC. Naive datetimes are
    assumed to be UTC.

    Example:
        >>> parse_timestamp("2026-03-01").isoformat()
        '2026-03-01T00:00:00+00:00'
        >>> parse_timestamp(None) is None
        True
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as an ISO string with a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_day(value: datetime) -> str:
    """Human date used in rendered messages, e.g. ``Mar 1, 2026``."""
    return f"{value.strftime('%b')} {value.day}, {value.year}"
