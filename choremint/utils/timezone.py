"""
Time utilities for ChoreMint.

All timestamps are stored as naive UTC datetimes so that SQLite and
PostgreSQL compare them the same way.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get the current UTC time as a naive datetime.

    Use this for every timestamp written to the database.

    Returns:
        Naive datetime in UTC
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def seconds_ago(seconds: int) -> datetime:
    """Return the naive UTC datetime ``seconds`` before now."""
    return utc_now() - timedelta(seconds=seconds)
