"""UTC time helpers.

SQLite hands datetimes back without tzinfo; every stored value is UTC, so
naive values read from the database are tagged as UTC before comparison.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expires_in(seconds: float) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


def isoformat(value: datetime) -> str:
    """Render as ISO-8601 with a trailing Z, the format the extension stores."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")
