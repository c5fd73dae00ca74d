"""
Message-related Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class Message(BaseModel):
    """A normalized, render-ready message held by the local message log."""
    model_config = {"frozen": True, "from_attributes": True}

    id: str
    sender_id: str
    text: str
    # None while the server timestamp is still pending
    created_at: Optional[datetime] = None
    edited: bool = False


class SendMessageRequest(BaseModel):
    """Schema for sending a message."""
    text: str = Field(..., max_length=4000)
    recipient_id: str


class EditMessageRequest(BaseModel):
    """Schema for editing a message."""
    text: str = Field(..., max_length=4000)


class CommandFailure(BaseModel):
    """Structured reason a write command failed."""
    code: str
    detail: str = ""


class CommandResult(BaseModel):
    """Outcome of a send, edit or delete command."""
    ok: bool
    chat_id: str
    message_id: Optional[str] = None
    error: Optional[CommandFailure] = None

    @classmethod
    def success(cls, chat_id: str, message_id: Optional[str] = None) -> "CommandResult":
        return cls(ok=True, chat_id=chat_id, message_id=message_id)

    @classmethod
    def failure(cls, chat_id: str, error, message_id: Optional[str] = None) -> "CommandResult":
        return cls(
            ok=False,
            chat_id=chat_id,
            message_id=message_id,
            error=CommandFailure(code=error.code, detail=error.detail)
        )


class MessageLogResponse(BaseModel):
    """The local message log of one conversation."""
    chat_id: str
    messages: List[Message] = []
