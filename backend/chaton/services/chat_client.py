"""
One chat surface for one signed-in user, and the per-process registry of them.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..schemas.chat import ConversationStatus
from ..schemas.message import CommandResult, Message
from ..schemas.user import RosterEntry, UserProfile
from ..utils.conversation_id import make_chat_id
from ..utils.logging_config import get_logger
from ..utils.timestamps import utcnow
from .command_dispatcher import CommandDispatcher
from .document_store import DocumentStore
from .message_store import LogObserver, MessageStore
from .roster_service import RosterService
from .session import AuthSession
from .sync_engine import StateListener, SyncEngine

logger = get_logger(__name__)


class ChatClient:
    """Wires the message store, sync engine, commands and roster together."""

    def __init__(
        self,
        store: DocumentStore,
        session: AuthSession,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session = session
        self.messages = MessageStore()
        self.sync = SyncEngine(store, self.messages, session)
        self.commands = CommandDispatcher(store, self.messages, session)
        self.roster = RosterService(store, clock=clock)

    @property
    def status(self) -> ConversationStatus:
        return self.sync.status

    async def open_conversation(self, chat_id: str) -> ConversationStatus:
        await self.sync.open_conversation(chat_id)
        return self.sync.status

    async def open_chat_with(self, other_user_id: str) -> ConversationStatus:
        """Open the conversation between the signed-in user and another user."""
        user = self.session.require_user()
        return await self.open_conversation(make_chat_id(user.id, other_user_id))

    async def close_conversation(self) -> None:
        self.sync.close_conversation()

    def get_log(self, chat_id: str) -> List[Message]:
        return list(self.messages.get_log(chat_id))

    def watch(self, observer: LogObserver, on_status: Optional[StateListener] = None) -> Callable[[], None]:
        """Observe log changes (and optionally conversation state); returns an unsubscribe function."""
        unsubscribers = [self.messages.subscribe(observer)]
        if on_status is not None:
            unsubscribers.append(self.sync.add_state_listener(on_status))

        def unwatch():
            for unsubscribe in unsubscribers:
                unsubscribe()

        return unwatch

    async def send(self, chat_id: str, text: str, recipient_id: str) -> CommandResult:
        return await self.commands.send(chat_id, text, recipient_id)

    async def edit(self, chat_id: str, message_id: str, new_text: str) -> CommandResult:
        return await self.commands.edit(chat_id, message_id, new_text)

    async def delete(self, chat_id: str, message_id: str) -> CommandResult:
        return await self.commands.delete(chat_id, message_id)

    async def fetch_roster(self) -> List[RosterEntry]:
        return await self.roster.fetch_users()

    def shutdown(self) -> None:
        """Close the live subscription and forget cached logs."""
        self.sync.close_conversation()
        self.messages.clear()
        self.session.sign_out()


class ClientRegistry:
    """Keeps one ChatClient per signed-in user in this process."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock
        self._clients: Dict[str, ChatClient] = {}

    def get_or_create(self, user: UserProfile) -> ChatClient:
        client = self._clients.get(user.id)
        if client is None:
            client = ChatClient(self.store, AuthSession(user=user), clock=self._clock)
            self._clients[user.id] = client
            logger.info(f"Created chat client for user {user.id}")
        else:
            # Pick up profile changes
            client.session.sign_in(user)
        return client

    def get(self, user_id: str) -> Optional[ChatClient]:
        return self._clients.get(user_id)

    def discard(self, user_id: str) -> None:
        client = self._clients.pop(user_id, None)
        if client is not None:
            client.shutdown()
            logger.info(f"Discarded chat client for user {user_id}")

    def close_all(self) -> None:
        for user_id in list(self._clients):
            self.discard(user_id)

    def __len__(self) -> int:
        return len(self._clients)
