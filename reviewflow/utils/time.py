"""Time helpers.

Timestamps are stored as naive UTC so that SQLite (tests) and PostgreSQL
compare them the same way.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ms_to_timedelta(ms: int | None) -> timedelta:
    return timedelta(milliseconds=max(ms or 0, 0))


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat() + "Z"
