"""
Database models package.
"""

from .user import User, UserStatus
from .chat import Chat
from .message import ChatMessage

__all__ = ["User", "UserStatus", "Chat", "ChatMessage"]
