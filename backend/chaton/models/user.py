"""
User and UserStatus database models.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
import uuid

from ..database import Base


def new_user_id() -> str:
    """User ids are hex so they never contain the chat id separator."""
    return uuid.uuid4().hex


class User(Base):
    """User account and public profile."""

    __tablename__ = "users"

    # Insertion order, used as the directory order of the roster
    row_id = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, index=True, nullable=False, default=new_user_id)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=True)
    photo_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), nullable=True)

    # Refreshed by sign-in and heartbeats; drives roster presence
    last_seen = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    status = relationship("UserStatus", back_populates="user", uselist=False, cascade="all, delete-orphan")


class UserStatus(Base):
    """Explicit online flag written on sign-in and sign-out."""

    __tablename__ = "user_status"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    online = Column(Boolean, default=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="status")
