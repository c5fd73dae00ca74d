"""
Conversation-related Pydantic schemas.
"""

from enum import Enum
from pydantic import BaseModel, model_validator
from typing import Optional, List
from datetime import datetime


class SubscriptionState(str, Enum):
    """Lifecycle of the live subscription for one conversation."""
    CLOSED = "closed"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"


class ChatSummary(BaseModel):
    """Denormalized conversation record used for previews."""
    id: str
    participants: List[str] = []
    last_message: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OpenConversationRequest(BaseModel):
    """Open a conversation by key or by the other participant's id."""
    chat_id: Optional[str] = None
    other_user_id: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if not self.chat_id and not self.other_user_id:
            raise ValueError("chat_id or other_user_id is required")
        return self


class ConversationStatus(BaseModel):
    """State of the conversation currently shown by a chat surface."""
    chat_id: Optional[str] = None
    state: SubscriptionState = SubscriptionState.CLOSED
    error: Optional[str] = None


class StreamEvent(BaseModel):
    """Server -> client push on the conversation WebSocket."""
    type: str  # status | log
    data: dict = {}
