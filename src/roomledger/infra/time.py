"""Time utilities for consistent timestamp handling.

Reservation intervals are timezone-naive wall-clock instants in the
property's local time; audit/log timestamps are UTC-aware.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Return current local wall-clock time (timezone-naive)."""
    return datetime.now()


def start_of_day(value: datetime) -> datetime:
    """Truncate a datetime to midnight of the same calendar day."""
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def to_naive_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
