"""
Chat summary database model.
"""

from sqlalchemy import Column, String, DateTime, Text, JSON

from ..database import Base


class Chat(Base):
    """Denormalized summary of a two-party conversation."""

    __tablename__ = "chats"

    # Conversation key, see utils.conversation_id
    id = Column(String(80), primary_key=True)

    participants = Column(JSON, default=list)
    last_message = Column(Text, nullable=True)

    # Server-assigned on every merge
    updated_at = Column(DateTime(timezone=True), nullable=True, index=True)
