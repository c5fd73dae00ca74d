"""
Chat message database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index

from ..database import Base


class ChatMessage(Base):
    """A message inside one conversation."""

    __tablename__ = "messages"

    # Listing a conversation is always ordered by creation time
    __table_args__ = (
        Index('ix_messages_chat_created', 'chat_id', 'created_at', 'row_id'),
    )

    # Insertion order breaks ties between equal timestamps
    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, index=True, nullable=False)
    chat_id = Column(String(80), nullable=False, index=True)

    sender_id = Column(String(32), nullable=False)
    text = Column(Text, nullable=False)
    edited = Column(Boolean, default=False, nullable=False)

    # Server-assigned, never changed after creation
    created_at = Column(DateTime(timezone=True), nullable=False)
