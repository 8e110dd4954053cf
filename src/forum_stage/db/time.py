"""Time utilities for database models."""

from datetime import UTC, date, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utctoday() -> date:
    """Return the current UTC calendar day."""
    return utcnow().date()
