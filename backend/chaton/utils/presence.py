"""
Presence inference from "last seen" timestamps.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from .timestamps import to_instant


# A user is online if their last heartbeat is younger than this
PRESENCE_WINDOW = timedelta(minutes=2)


def is_online(last_seen: Optional[Any], now: datetime) -> bool:
    """
    Return True iff ``now - last_seen`` is strictly inside the window.

    Total over its input: a missing or unreadable ``last_seen`` means offline.
    """
    try:
        last_seen = to_instant(last_seen)
    except (TypeError, ValueError):
        return False
    if last_seen is None:
        return False
    return to_instant(now) - last_seen < PRESENCE_WINDOW
