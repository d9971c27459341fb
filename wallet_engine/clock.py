"""Time helpers shared by the wallet services.

SQLite hands DateTime(timezone=True) columns back without tzinfo; everything
the engine writes is UTC, so naive values are read as UTC.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def today() -> date:
    """The calendar date daily usage is recorded against (UTC)."""
    return utcnow().date()
