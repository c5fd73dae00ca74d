"""
User directory with presence.
"""

from datetime import datetime
from typing import Callable, List

from ..schemas.user import RosterEntry
from ..utils.presence import is_online
from ..utils.timestamps import to_instant, utcnow
from .document_store import DocumentStore


class RosterService:
    """Fetches users and flags who is online at the moment of the fetch."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    async def fetch_users(self) -> List[RosterEntry]:
        users = await self.store.list_users()
        now = self._clock()

        return [
            RosterEntry(
                **user.model_dump(exclude={"last_seen", "created_at"}),
                last_seen=to_instant(user.last_seen),
                created_at=to_instant(user.created_at),
                is_online=is_online(user.last_seen, now)
            )
            for user in users
        ]
