"""Shared fixtures for the chatON tests"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import func, select

from chaton.database import close_db, init_db, make_engine, make_session_factory
from chaton.models.message import ChatMessage
from chaton.models.user import User
from chaton.schemas.user import UserProfile
from chaton.services.command_dispatcher import CommandDispatcher
from chaton.services.document_store import DocumentStore
from chaton.services.message_store import MessageStore
from chaton.services.session import AuthSession
from chaton.services.sync_engine import SyncEngine


MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Controllable replacement for utcnow"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


async def settle(rounds: int = 5) -> None:
    """Let queued callbacks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def add_user(session_factory, user_id: str, username: str,
                   last_seen: Optional[datetime] = None) -> UserProfile:
    async with session_factory() as session:
        user = User(
            id=user_id,
            username=username,
            email=f"{username}@example.com",
            hashed_password="not-a-real-hash",
            display_name=username.title(),
            last_seen=last_seen,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return UserProfile.model_validate(user)


async def count_messages(session_factory, chat_id: str) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(ChatMessage).filter(ChatMessage.chat_id == chat_id)
        )
        return result.scalar_one()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def engine():
    db_engine = make_engine(MEMORY_URL)
    await init_db(db_engine)
    yield db_engine
    await close_db(db_engine)


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def store(session_factory, clock):
    document_store = DocumentStore(session_factory, clock=clock)
    yield document_store
    document_store.close()


@pytest.fixture
def alice():
    return UserProfile(id="U1", username="alice", display_name="Alice")


@pytest.fixture
def bob():
    return UserProfile(id="U2", username="bob", display_name="Bob")


@pytest.fixture
def session(alice):
    return AuthSession(user=alice)


@pytest.fixture
def messages():
    return MessageStore()


@pytest.fixture
async def sync(store, messages, session):
    engine = SyncEngine(store, messages, session)
    yield engine
    engine.close_conversation()


@pytest.fixture
def dispatcher(store, messages, session):
    return CommandDispatcher(store, messages, session)
