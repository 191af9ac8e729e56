"""Datetime utilities for consistent timezone handling across the billing core."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time - standardized across the application.

    Returns:
        Current datetime in UTC timezone.
    """
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    """Get current UTC time as naive datetime for database operations.

    Returns:
        Current datetime in UTC as naive datetime (no timezone info).

    Note:
        Billing timestamps are stored in TIMESTAMP WITHOUT TIME ZONE columns, so
        every comparison against a persisted period boundary uses this value.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
