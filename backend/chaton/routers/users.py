"""
User directory routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from ..exceptions import RemoteReadError
from ..schemas.user import RosterEntry
from ..services.chat_client import ChatClient
from .chats import get_chat_client


router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("", response_model=List[RosterEntry])
async def list_users(client: ChatClient = Depends(get_chat_client)):
    """All users, each flagged online or offline as of this request."""
    try:
        return await client.fetch_roster()
    except RemoteReadError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.detail)
