"""
Process-local cache of render-ready message logs, keyed by conversation.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple

from ..schemas.message import Message
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


MessageLog = Tuple[Message, ...]
LogObserver = Callable[[str, MessageLog], None]

# Only these fields may change after a message is created
MUTABLE_FIELDS = frozenset({"text", "edited"})


class MessageStore:
    """
    Single source of truth for what the UI renders.

    Logs are immutable tuples. Every effective mutation notifies observers
    synchronously with the new log. All access happens on the event loop,
    so writes never interleave.
    """

    def __init__(self):
        self._logs: Dict[str, MessageLog] = {}
        self._observers: List[LogObserver] = []

    def subscribe(self, observer: LogObserver) -> Callable[[], None]:
        """Register an observer and return a function that removes it."""
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def get_log(self, chat_id: str) -> MessageLog:
        return self._logs.get(chat_id, ())

    def replace_log(self, chat_id: str, messages: Iterable[Message]) -> None:
        """Overwrite the whole log of a conversation."""
        self._logs[chat_id] = tuple(messages)
        self._notify(chat_id)

    def remove_message(self, chat_id: str, message_id: str) -> bool:
        log = self.get_log(chat_id)
        remaining = tuple(m for m in log if m.id != message_id)
        if len(remaining) == len(log):
            return False

        self._logs[chat_id] = remaining
        self._notify(chat_id)
        return True

    def patch_message(self, chat_id: str, message_id: str, fields: Mapping[str, Any]) -> bool:
        """Apply a local edit to one message; ``edited`` never reverts."""
        immutable = set(fields) - MUTABLE_FIELDS
        if immutable:
            raise ValueError(f"Cannot patch immutable message fields: {sorted(immutable)}")

        log = self.get_log(chat_id)
        for index, message in enumerate(log):
            if message.id == message_id:
                break
        else:
            return False

        update = dict(fields)
        update["edited"] = message.edited or bool(update.get("edited", False))
        patched = message.model_copy(update=update)

        self._logs[chat_id] = log[:index] + (patched,) + log[index + 1:]
        self._notify(chat_id)
        return True

    def clear(self) -> None:
        self._logs.clear()

    def _notify(self, chat_id: str) -> None:
        log = self._logs.get(chat_id, ())
        for observer in list(self._observers):
            try:
                observer(chat_id, log)
            except Exception:
                logger.exception(f"Message log observer failed for chat {chat_id}")
