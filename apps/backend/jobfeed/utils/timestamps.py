"""Timestamp helpers.

SQLite hands back naive datetimes while PostgreSQL returns aware ones;
everything here normalizes to aware UTC so comparisons and serialized
page tokens look the same on both backends.
"""

from datetime import datetime, timezone

from dateutil import parser


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    if not value or not value.strip():
        raise ValueError("Timestamp cannot be empty")

    try:
        parsed = parser.isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Cannot parse timestamp: '{value}'") from e

    return ensure_utc(parsed)
