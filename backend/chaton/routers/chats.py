"""
Conversation routes: open/close, message log, write commands and live stream.
"""

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession
import asyncio

from ..database import get_db
from ..exceptions import SubscriptionError, UnauthenticatedError
from ..models.user import User
from ..schemas.chat import ConversationStatus, OpenConversationRequest, StreamEvent
from ..schemas.message import (
    CommandResult,
    EditMessageRequest,
    MessageLogResponse,
    SendMessageRequest
)
from ..schemas.user import UserProfile
from ..services.chat_client import ChatClient, ClientRegistry
from ..utils.conversation_id import chat_participants
from ..utils.logging_config import get_logger
from ..utils.security import get_current_user, get_user_from_token

logger = get_logger(__name__)


router = APIRouter(prefix="/api/chats", tags=["Chats"])


# Command failure code -> HTTP status
FAILURE_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "remote_write": status.HTTP_502_BAD_GATEWAY,
    "remote_read": status.HTTP_502_BAD_GATEWAY,
}


def get_registry(connection: HTTPConnection) -> ClientRegistry:
    return connection.app.state.registry


async def get_chat_client(
    current_user: User = Depends(get_current_user),
    registry: ClientRegistry = Depends(get_registry)
) -> ChatClient:
    """Get the chat surface of the current user."""
    return registry.get_or_create(UserProfile.model_validate(current_user))


def require_participant(chat_id: str, user: User) -> None:
    if user.id not in chat_participants(chat_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a participant of this conversation"
        )


def raise_for_result(result: CommandResult) -> CommandResult:
    if result.ok:
        return result
    raise HTTPException(
        status_code=FAILURE_STATUS.get(result.error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=result.error.model_dump()
    )


@router.post("/open", response_model=ConversationStatus)
async def open_conversation(
    request: OpenConversationRequest,
    current_user: User = Depends(get_current_user),
    client: ChatClient = Depends(get_chat_client)
):
    """Open a conversation and start streaming its messages."""
    try:
        if request.other_user_id:
            await client.open_chat_with(request.other_user_id)
        else:
            require_participant(request.chat_id, current_user)
            await client.open_conversation(request.chat_id)
    except UnauthenticatedError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.detail)
    except SubscriptionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.detail)

    await client.sync.drain()
    return client.status


@router.post("/close", response_model=ConversationStatus)
async def close_conversation(client: ChatClient = Depends(get_chat_client)):
    """Stop streaming the open conversation."""
    await client.close_conversation()
    return client.status


@router.get("/active", response_model=ConversationStatus)
async def get_active_conversation(client: ChatClient = Depends(get_chat_client)):
    """State of the open conversation."""
    return client.status


@router.get("/{chat_id}/messages", response_model=MessageLogResponse)
async def get_messages(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    client: ChatClient = Depends(get_chat_client)
):
    """The local message log of a conversation."""
    require_participant(chat_id, current_user)
    await client.sync.drain()
    return MessageLogResponse(chat_id=chat_id, messages=client.get_log(chat_id))


@router.post("/{chat_id}/messages", response_model=CommandResult, status_code=status.HTTP_201_CREATED)
async def send_message(
    chat_id: str,
    request: SendMessageRequest,
    client: ChatClient = Depends(get_chat_client)
):
    """Send a message; it appears in the log with the next snapshot."""
    return raise_for_result(await client.send(chat_id, request.text, request.recipient_id))


@router.put("/{chat_id}/messages/{message_id}", response_model=CommandResult)
async def edit_message(
    chat_id: str,
    message_id: str,
    request: EditMessageRequest,
    client: ChatClient = Depends(get_chat_client)
):
    """Edit one of your messages."""
    return raise_for_result(await client.edit(chat_id, message_id, request.text))


@router.delete("/{chat_id}/messages/{message_id}", response_model=CommandResult)
async def delete_message(
    chat_id: str,
    message_id: str,
    client: ChatClient = Depends(get_chat_client)
):
    """Delete one of your messages."""
    return raise_for_result(await client.delete(chat_id, message_id))


@router.websocket("/ws")
async def conversation_stream(
    websocket: WebSocket,
    token: str,
    db: AsyncSession = Depends(get_db)
):
    """Push the open conversation's state and log on every change."""
    try:
        user = await get_user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    client = get_registry(websocket).get_or_create(UserProfile.model_validate(user))
    await websocket.accept()

    events: "asyncio.Queue[StreamEvent]" = asyncio.Queue()

    def log_event(chat_id, log) -> StreamEvent:
        return StreamEvent(type="log", data={
            "chat_id": chat_id,
            "messages": [m.model_dump(mode="json") for m in log]
        })

    def on_log(chat_id, log):
        if chat_id == client.status.chat_id:
            events.put_nowait(log_event(chat_id, log))

    def on_status(conversation_status: ConversationStatus):
        events.put_nowait(StreamEvent(type="status", data=conversation_status.model_dump(mode="json")))

    unwatch = client.watch(on_log, on_status)

    on_status(client.status)
    if client.status.chat_id:
        events.put_nowait(log_event(client.status.chat_id, client.messages.get_log(client.status.chat_id)))

    async def pump():
        while True:
            event = await events.get()
            await websocket.send_json(event.model_dump(mode="json"))

    async def listen():
        # Inbound frames are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(pump()), asyncio.create_task(listen())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None \
                    and not isinstance(task.exception(), WebSocketDisconnect):
                logger.error(f"Conversation stream for {user.id} failed: {task.exception()}")
    finally:
        unwatch()
        for task in tasks:
            task.cancel()
