"""
Live subscription lifecycle for the open conversation of a chat surface.
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from ..exceptions import SubscriptionError
from ..schemas.chat import ConversationStatus, SubscriptionState
from ..schemas.message import Message
from ..utils.logging_config import get_logger
from ..utils.timestamps import to_instant
from .document_store import DocumentStore, MessageDocument, Snapshot
from .message_store import MessageStore
from .session import AuthSession
from .subscription_hub import Subscription

logger = get_logger(__name__)


StateListener = Callable[[ConversationStatus], None]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def normalize_message(doc: MessageDocument) -> Message:
    """Turn a stored message into its render-ready form."""
    return Message(
        id=doc.id,
        sender_id=doc.sender_id,
        text=doc.text,
        created_at=to_instant(doc.created_at),
        edited=bool(doc.edited)
    )


def normalize_snapshot(docs: Iterable[MessageDocument]) -> List[Message]:
    """
    Normalize a snapshot, oldest first.

    Messages whose server timestamp is still pending have no place in the
    timeline yet; they follow the resolved ones in arrival order.
    """
    messages = [normalize_message(doc) for doc in docs]
    # sorted() is stable, so ties keep the store's insertion order
    return sorted(messages, key=lambda m: (m.created_at is None, m.created_at or _EPOCH))


class SyncEngine:
    """
    Keeps exactly one live subscription, for the currently open conversation,
    and mirrors its snapshots into the message store.
    """

    def __init__(self, store: DocumentStore, messages: MessageStore, session: AuthSession):
        self.store = store
        self.messages = messages
        self.session = session

        self.chat_id: Optional[str] = None
        self.state = SubscriptionState.CLOSED
        self.last_error: Optional[SubscriptionError] = None

        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._listeners: List[StateListener] = []

    @property
    def status(self) -> ConversationStatus:
        return ConversationStatus(
            chat_id=self.chat_id,
            state=self.state,
            error=self.last_error.detail if self.last_error else None
        )

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def open_conversation(self, chat_id: str) -> None:
        """Subscribe to a conversation, replacing any other open one."""
        self.session.require_user()

        if chat_id == self.chat_id and self.state != SubscriptionState.CLOSED:
            return

        self.close_conversation()

        self._generation += 1
        generation = self._generation
        self.chat_id = chat_id
        self.last_error = None
        self._set_state(SubscriptionState.SUBSCRIBING)

        logger.info(f"Opening conversation {chat_id}")
        try:
            subscription = await self.store.subscribe_messages(
                chat_id,
                lambda snapshot: self._handle_snapshot(generation, snapshot),
                lambda error: self._handle_error(generation, error)
            )
        except SubscriptionError as e:
            if generation == self._generation:
                self.last_error = e
                self._set_state(SubscriptionState.CLOSED)
            raise

        if generation != self._generation:
            # Another conversation was opened while this one was subscribing
            subscription.close()
            return
        self._subscription = subscription

    def close_conversation(self) -> None:
        """Terminate the live subscription, if there is one."""
        if self._subscription is not None:
            logger.info(f"Closing conversation {self.chat_id}")
            self._subscription.close()
            self._subscription = None

        self._generation += 1
        self.chat_id = None
        self.last_error = None
        if self.state != SubscriptionState.CLOSED:
            self._set_state(SubscriptionState.CLOSED)

    async def drain(self) -> None:
        """Wait until snapshots already pushed to the live subscription are applied."""
        if self._subscription is not None:
            await self._subscription.drain()

    def is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state != SubscriptionState.CLOSED

    def _handle_snapshot(self, generation: int, snapshot: Snapshot) -> None:
        if not self.is_current(generation) or snapshot.chat_id != self.chat_id:
            logger.debug(f"Dropping stale snapshot for chat {snapshot.chat_id}")
            return

        self.messages.replace_log(snapshot.chat_id, normalize_snapshot(snapshot.docs))
        if self.state == SubscriptionState.SUBSCRIBING:
            self._set_state(SubscriptionState.STREAMING)

    def _handle_error(self, generation: int, error: Exception) -> None:
        if not self.is_current(generation):
            return

        logger.error(f"Subscription to chat {self.chat_id} failed: {error}")
        if isinstance(error, SubscriptionError):
            self.last_error = error
        else:
            self.last_error = SubscriptionError(str(error))

        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._set_state(SubscriptionState.CLOSED)

    def _set_state(self, state: SubscriptionState) -> None:
        self.state = state
        status = self.status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Conversation state listener failed")
