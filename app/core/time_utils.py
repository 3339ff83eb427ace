"""Ovation Sync — UTC time helpers.

SQLite hands back naive datetimes, so everything read from the store is
normalized through ``ensure_utc`` before it is compared with ``utc_now()``.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
