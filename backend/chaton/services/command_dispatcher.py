"""
Write commands against the remote store: send, edit and delete.

Sent messages are never inserted locally; the sender sees their own message
once the subscription delivers the next snapshot. Edits and deletes are
mirrored into the message store after the remote write succeeds.
"""

from ..exceptions import ChatError, ValidationError
from ..schemas.message import CommandResult
from ..utils.conversation_id import make_chat_id
from ..utils.logging_config import get_logger
from .document_store import DocumentStore
from .message_store import MessageStore
from .session import AuthSession

logger = get_logger(__name__)


class CommandDispatcher:
    """Executes message commands for the signed-in user."""

    def __init__(self, store: DocumentStore, messages: MessageStore, session: AuthSession):
        self.store = store
        self.messages = messages
        self.session = session

    async def send(self, chat_id: str, text: str, recipient_id: str) -> CommandResult:
        """Send a message and update the conversation summary."""
        try:
            sender = self.session.require_user()
            if not text or not text.strip():
                raise ValidationError("Message text cannot be empty")
            if make_chat_id(sender.id, recipient_id) != chat_id:
                raise ValidationError("Recipient is not a participant of this conversation")

            message_id = await self.store.add_message(chat_id, sender.id, text)
            await self.store.merge_chat_summary(
                chat_id,
                participants=[sender.id, recipient_id],
                last_message=text
            )
        except ChatError as e:
            logger.warning(f"Send to chat {chat_id} failed ({e.code}): {e.detail}")
            return CommandResult.failure(chat_id, e)

        return CommandResult.success(chat_id, message_id)

    async def edit(self, chat_id: str, message_id: str, new_text: str) -> CommandResult:
        """Replace the text of one of the user's own messages."""
        try:
            self.session.require_user()
            if not new_text or not new_text.strip():
                raise ValidationError("Message text cannot be empty")
            await self._require_own_message(chat_id, message_id)

            updated = await self.store.merge_message(
                chat_id, message_id, {"text": new_text, "edited": True}
            )
            if not updated:
                raise ValidationError("Message does not belong to this conversation")
        except ChatError as e:
            logger.warning(f"Edit of {message_id} in chat {chat_id} failed ({e.code}): {e.detail}")
            return CommandResult.failure(chat_id, e, message_id)

        self.messages.patch_message(chat_id, message_id, {"text": new_text, "edited": True})
        return CommandResult.success(chat_id, message_id)

    async def delete(self, chat_id: str, message_id: str) -> CommandResult:
        """Delete one of the user's own messages; a missing message counts as deleted."""
        try:
            await self._require_own_message(chat_id, message_id, missing_ok=True)
            await self.store.delete_message(chat_id, message_id)
        except ChatError as e:
            logger.warning(f"Delete of {message_id} in chat {chat_id} failed ({e.code}): {e.detail}")
            return CommandResult.failure(chat_id, e, message_id)

        self.messages.remove_message(chat_id, message_id)
        return CommandResult.success(chat_id, message_id)

    async def _require_own_message(self, chat_id: str, message_id: str, missing_ok: bool = False):
        user = self.session.require_user()
        document = await self.store.get_message(chat_id, message_id)
        if document is None:
            if missing_ok:
                return None
            raise ValidationError("Message does not belong to this conversation")
        if document.sender_id != user.id:
            raise ValidationError("Only the sender can change a message")
        return document
