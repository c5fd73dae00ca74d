"""
Services package.
"""

from .auth_service import AuthService
from .chat_client import ChatClient, ClientRegistry
from .command_dispatcher import CommandDispatcher
from .document_store import DocumentStore, MessageDocument, Snapshot
from .message_store import MessageStore
from .roster_service import RosterService
from .session import AuthSession
from .sync_engine import SyncEngine

__all__ = [
    "AuthService",
    "AuthSession",
    "ChatClient",
    "ClientRegistry",
    "CommandDispatcher",
    "DocumentStore",
    "MessageDocument",
    "MessageStore",
    "RosterService",
    "Snapshot",
    "SyncEngine",
]
