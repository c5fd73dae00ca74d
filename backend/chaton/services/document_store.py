"""
Remote document store for conversations, summaries and the user directory.

Messages live under a conversation key and are always listed by
server-assigned creation time. Every committed write to a conversation
pushes a full snapshot of that conversation to its live subscriptions.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import uuid

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..exceptions import RemoteReadError, RemoteWriteError, SubscriptionError
from ..models.chat import Chat
from ..models.message import ChatMessage
from ..models.user import User
from ..schemas.chat import ChatSummary
from ..schemas.user import UserProfile
from ..utils.logging_config import get_logger
from ..utils.timestamps import SERVER_TIMESTAMP, PendingTimestamp, utcnow
from .subscription_hub import ErrorCallback, SnapshotCallback, SnapshotHub, Subscription

logger = get_logger(__name__)


# Fields a merge may change on an existing message
MERGEABLE_MESSAGE_FIELDS = frozenset({"text", "edited"})


@dataclass
class MessageDocument:
    """A message as stored remotely; ``created_at`` may still be pending."""
    id: str
    sender_id: str
    text: str
    created_at: Any
    edited: bool = False

    @property
    def has_pending_write(self) -> bool:
        return isinstance(self.created_at, PendingTimestamp)


@dataclass
class Snapshot:
    """Complete, ordered restatement of one conversation."""
    chat_id: str
    docs: List[MessageDocument] = field(default_factory=list)

    @property
    def has_pending_writes(self) -> bool:
        return any(doc.has_pending_write for doc in self.docs)


def new_message_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore:
    """SQLAlchemy-backed store with live snapshot subscriptions."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], datetime] = utcnow,
        latency_compensation: bool = False
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.latency_compensation = latency_compensation
        self.hub = SnapshotHub()
        # One per chat, held from snapshot query to delivery
        self._publish_locks: Dict[str, asyncio.Lock] = {}

    # ============= Subscriptions =============

    async def subscribe_messages(
        self,
        chat_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback
    ) -> Subscription:
        """Listen to all messages of a conversation, oldest first."""
        subscription = self.hub.subscribe(chat_id, on_snapshot, on_error)
        async with self._publish_lock(chat_id):
            try:
                snapshot = await self._query_snapshot(chat_id)
            except SQLAlchemyError as e:
                subscription.close()
                logger.error(f"Initial snapshot for chat {chat_id} failed: {e}")
                raise SubscriptionError(f"Could not subscribe to chat {chat_id}") from e

            subscription.deliver(snapshot)
        return subscription

    async def flush(self) -> None:
        """Wait until every pending snapshot has reached its listener."""
        await self.hub.flush()

    def close(self) -> None:
        self.hub.close_all()

    async def _query_snapshot(self, chat_id: str) -> Snapshot:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatMessage)
                .filter(ChatMessage.chat_id == chat_id)
                .order_by(ChatMessage.created_at, ChatMessage.row_id)
            )
            rows = result.scalars().all()

        return Snapshot(chat_id=chat_id, docs=[self._to_document(row) for row in rows])

    async def _publish(self, chat_id: str, pending: Optional[MessageDocument] = None) -> None:
        """Push the current state of a conversation to its listeners."""
        if not self.hub.listeners(chat_id):
            return
        async with self._publish_lock(chat_id):
            try:
                snapshot = await self._query_snapshot(chat_id)
            except SQLAlchemyError as e:
                logger.error(f"Snapshot query for chat {chat_id} failed: {e}")
                self.hub.broadcast_error(chat_id, SubscriptionError(f"Snapshot query failed: {e}"))
                return

            if pending is not None:
                snapshot.docs.append(pending)
            self.hub.broadcast(snapshot)

    def _publish_lock(self, chat_id: str) -> asyncio.Lock:
        lock = self._publish_locks.get(chat_id)
        if lock is None:
            lock = self._publish_locks[chat_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _to_document(row: ChatMessage) -> MessageDocument:
        return MessageDocument(
            id=row.id,
            sender_id=row.sender_id,
            text=row.text,
            created_at=row.created_at,
            edited=bool(row.edited)
        )

    # ============= Messages =============

    async def add_message(self, chat_id: str, sender_id: str, text: str) -> str:
        """Create a message; the store assigns its id and creation time."""
        message_id = new_message_id()

        if self.latency_compensation:
            await self._publish(chat_id, pending=MessageDocument(
                id=message_id,
                sender_id=sender_id,
                text=text,
                created_at=SERVER_TIMESTAMP
            ))

        try:
            async with self._session_factory() as session:
                session.add(ChatMessage(
                    id=message_id,
                    chat_id=chat_id,
                    sender_id=sender_id,
                    text=text,
                    edited=False,
                    created_at=self._clock()
                ))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create message in chat {chat_id}: {e}")
            # Retract the pending copy, if one was published
            await self._publish(chat_id)
            raise RemoteWriteError(f"Could not send message: {e}") from e

        await self._publish(chat_id)
        return message_id

    async def get_message(self, chat_id: str, message_id: str) -> Optional[MessageDocument]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ChatMessage).filter(
                        ChatMessage.chat_id == chat_id,
                        ChatMessage.id == message_id
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RemoteReadError(f"Could not load message {message_id}: {e}") from e

        return self._to_document(row) if row else None

    async def merge_message(self, chat_id: str, message_id: str, fields: Dict[str, Any]) -> bool:
        """Merge fields onto an existing message. Returns False if it is gone."""
        unknown = set(fields) - MERGEABLE_MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be merged onto a message: {sorted(unknown)}")

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ChatMessage).filter(
                        ChatMessage.chat_id == chat_id,
                        ChatMessage.id == message_id
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return False

                for key, value in fields.items():
                    setattr(row, key, value)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update message {message_id} in chat {chat_id}: {e}")
            raise RemoteWriteError(f"Could not update message: {e}") from e

        await self._publish(chat_id)
        return True

    async def delete_message(self, chat_id: str, message_id: str) -> bool:
        """Delete a message. Deleting a missing message is not an error."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(ChatMessage).where(
                        ChatMessage.chat_id == chat_id,
                        ChatMessage.id == message_id
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete message {message_id} in chat {chat_id}: {e}")
            raise RemoteWriteError(f"Could not delete message: {e}") from e

        deleted = result.rowcount > 0
        if deleted:
            await self._publish(chat_id)
        return deleted

    # ============= Chat summaries =============

    async def merge_chat_summary(
        self,
        chat_id: str,
        participants: List[str],
        last_message: str
    ) -> ChatSummary:
        """Create or update the summary record of a conversation."""
        try:
            async with self._session_factory() as session:
                chat = await session.get(Chat, chat_id)
                if chat is None:
                    chat = Chat(id=chat_id)
                    session.add(chat)

                chat.participants = list(participants)
                chat.last_message = last_message
                chat.updated_at = self._clock()

                await session.commit()
                summary = ChatSummary.model_validate(chat)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update summary of chat {chat_id}: {e}")
            raise RemoteWriteError(f"Could not update conversation summary: {e}") from e

        return summary

    async def get_chat_summary(self, chat_id: str) -> Optional[ChatSummary]:
        try:
            async with self._session_factory() as session:
                chat = await session.get(Chat, chat_id)
        except SQLAlchemyError as e:
            raise RemoteReadError(f"Could not load conversation {chat_id}: {e}") from e

        return ChatSummary.model_validate(chat) if chat else None

    # ============= Users =============

    async def list_users(self) -> List[UserProfile]:
        """All active users in directory order."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User)
                    .filter(User.is_active == True)  # noqa: E712
                    .order_by(User.row_id)
                )
                users = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list users: {e}")
            raise RemoteReadError(f"Could not load users: {e}") from e

        return [UserProfile.model_validate(user) for user in users]
