"""
Timestamp helpers shared by the document store and the sync engine.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class PendingTimestamp:
    """Marker for a server timestamp that has not been resolved yet."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = PendingTimestamp()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_instant(value: Any) -> Optional[datetime]:
    """
    Coerce a raw timestamp to an aware UTC datetime.

    Accepts aware or naive datetimes (naive is read as UTC), ISO 8601 strings
    and epoch milliseconds. The pending marker and missing values become None.
    """
    if value is None or isinstance(value, PendingTimestamp):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        return to_instant(datetime.fromisoformat(value.replace("Z", "+00:00")))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    raise TypeError(f"Unsupported timestamp value: {value!r}")
