"""
Deterministic conversation keys for two-party chats.
"""

from typing import Tuple


# User ids are hex strings, so "_" never appears inside one
CHAT_ID_SEPARATOR = "_"


def make_chat_id(uid_a: str, uid_b: str) -> str:
    """Build the conversation key for an unordered pair of user ids."""
    return CHAT_ID_SEPARATOR.join(sorted([uid_a, uid_b]))


def chat_participants(chat_id: str) -> Tuple[str, str]:
    """Split a conversation key back into its two user ids."""
    first, _, second = chat_id.partition(CHAT_ID_SEPARATOR)
    return first, second
