"""
UTC timestamp utilities (stdlib-only).

The schema stores ``TIMESTAMP`` columns without a time zone, so values are
written as naive datetimes that are understood to be UTC.

STDLIB ONLY - NO PYDANTIC.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert *dt* to UTC and drop the tzinfo (naive inputs are assumed UTC)."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def naive_utc_now() -> datetime:
    """Current UTC time in the form the schema stores it."""
    return to_naive_utc(utc_now())
