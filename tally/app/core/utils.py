"""Utility functions for the Tally application."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are taken to be UTC already, which is how SQLite hands back
    stored timestamps.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC start of ``day`` and start of the following day.

    Examples:
        >>> day_bounds(date(2026, 3, 1))[1].isoformat()
        '2026-03-02T00:00:00+00:00'
    """
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """Parse an inclusive upper bound for date filters.

    A bare ``YYYY-MM-DD`` date covers the whole day; anything else is parsed
    as an ISO 8601 timestamp.

    Raises:
        ValueError: If the value is not a valid date or timestamp
    """
    if not value:
        return None
    if len(value) == 10:
        start, end = day_bounds(date.fromisoformat(value))
        return end - timedelta(microseconds=1)
    return as_utc(datetime.fromisoformat(value))


def parse_range_start(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if len(value) == 10:
        return day_bounds(date.fromisoformat(value))[0]
    return as_utc(datetime.fromisoformat(value))
