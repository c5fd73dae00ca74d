"""Tests for the conversation subscription lifecycle"""

import asyncio
from datetime import datetime, timezone

import pytest

from chaton.exceptions import SubscriptionError, UnauthenticatedError
from chaton.schemas.chat import SubscriptionState
from chaton.services.document_store import DocumentStore, MessageDocument, Snapshot
from chaton.services.session import AuthSession
from chaton.services.sync_engine import SyncEngine, normalize_snapshot
from chaton.utils.timestamps import SERVER_TIMESTAMP

from conftest import settle


K1 = "U1_U2"
K2 = "U1_U3"


class TestNormalizeSnapshot:
    """Test snapshot normalization"""

    def test_pending_timestamps_follow_resolved_messages(self):
        t0 = datetime(2024, 1, 1, 12, 0)
        docs = [
            MessageDocument(id="p1", sender_id="U1", text="pending", created_at=SERVER_TIMESTAMP),
            MessageDocument(id="m1", sender_id="U2", text="first", created_at=t0),
            MessageDocument(id="m2", sender_id="U1", text="second", created_at=t0),
        ]

        messages = normalize_snapshot(docs)

        assert [m.id for m in messages] == ["m1", "m2", "p1"]
        assert messages[0].created_at == t0.replace(tzinfo=timezone.utc)
        assert messages[2].created_at is None


class TestOpenConversation:
    """Test opening and streaming a conversation"""

    async def test_first_snapshot_moves_to_streaming(self, sync, store, messages):
        await store.add_message(K1, "U2", "hello")

        await sync.open_conversation(K1)
        assert sync.state == SubscriptionState.SUBSCRIBING

        await store.flush()
        assert sync.state == SubscriptionState.STREAMING
        assert [m.text for m in messages.get_log(K1)] == ["hello"]

    async def test_each_snapshot_replaces_the_log(self, sync, store, messages):
        await sync.open_conversation(K1)
        message_id = await store.add_message(K1, "U2", "hello")
        await store.flush()
        assert len(messages.get_log(K1)) == 1

        await store.delete_message(K1, message_id)
        await store.flush()
        assert messages.get_log(K1) == ()

    async def test_reopening_same_key_keeps_subscription(self, sync, store):
        await sync.open_conversation(K1)
        await sync.open_conversation(K1)

        assert store.hub.active_count() == 1

    async def test_requires_signed_in_user(self, store, messages):
        engine = SyncEngine(store, messages, AuthSession())

        with pytest.raises(UnauthenticatedError):
            await engine.open_conversation(K1)
        assert store.hub.active_count() == 0
        assert engine.state == SubscriptionState.CLOSED

    async def test_state_listeners_see_transitions(self, sync, store):
        states = []
        sync.add_state_listener(lambda status: states.append(status.state))

        await sync.open_conversation(K1)
        await store.flush()
        sync.close_conversation()

        assert states == [
            SubscriptionState.SUBSCRIBING,
            SubscriptionState.STREAMING,
            SubscriptionState.CLOSED,
        ]


class TestSwitchingConversations:
    """Test that only one subscription is ever live"""

    async def test_switch_leaves_one_subscription(self, sync, store):
        await sync.open_conversation(K1)
        await sync.open_conversation(K2)

        assert store.hub.active_count() == 1
        assert store.hub.listeners(K1) == []
        assert len(store.hub.listeners(K2)) == 1
        assert sync.chat_id == K2

    async def test_late_snapshot_for_previous_key_is_dropped(self, sync, store, messages):
        await sync.open_conversation(K1)
        stale_generation = sync._generation
        await sync.open_conversation(K2)
        await store.add_message(K2, "U3", "current")
        await store.flush()
        before = messages.get_log(K2)

        sync._handle_snapshot(stale_generation, Snapshot(chat_id=K1, docs=[
            MessageDocument(id="x", sender_id="U2", text="stale", created_at=datetime(2024, 1, 1))
        ]))
        sync._handle_snapshot(stale_generation, Snapshot(chat_id=K2, docs=[]))

        assert messages.get_log(K2) == before
        assert [m.text for m in messages.get_log(K2)] == ["current"]
        assert messages.get_log(K1) == ()

    async def test_open_superseded_while_subscribing(self, sync, store, messages):
        await store.add_message(K1, "U2", "old chat")

        await asyncio.gather(sync.open_conversation(K1), sync.open_conversation(K2))
        await store.flush()

        assert store.hub.active_count() == 1
        assert store.hub.listeners(K1) == []
        assert sync.chat_id == K2
        assert sync.state == SubscriptionState.STREAMING
        assert messages.get_log(K1) == ()

    async def test_writes_to_previous_key_do_not_reach_the_log(self, sync, store, messages):
        await sync.open_conversation(K1)
        await sync.open_conversation(K2)

        await store.add_message(K1, "U2", "old chat")
        await store.flush()

        assert messages.get_log(K1) == ()
        assert messages.get_log(K2) == ()

    async def test_close_terminates_subscription(self, sync, store):
        await sync.open_conversation(K1)
        sync.close_conversation()

        assert store.hub.active_count() == 0
        assert sync.state == SubscriptionState.CLOSED
        assert sync.chat_id is None


class TestSubscriptionErrors:
    """Test failure handling"""

    async def test_stream_error_closes_without_retry(self, sync, store):
        await sync.open_conversation(K1)
        await store.flush()

        sync._subscription.fail(SubscriptionError("stream dropped"))
        await settle()

        assert sync.state == SubscriptionState.CLOSED
        assert sync.status.error == "stream dropped"
        assert sync.status.chat_id == K1
        assert store.hub.active_count() == 0

        # Retrying is an explicit re-open
        await sync.open_conversation(K1)
        await store.flush()
        assert sync.state == SubscriptionState.STREAMING
        assert sync.status.error is None

    async def test_failed_subscribe_reports_error(self, engine, session_factory, messages, session, clock):
        broken = DocumentStore(session_factory, clock=clock)
        sync = SyncEngine(broken, messages, session)
        await engine.dispose()

        with pytest.raises(SubscriptionError):
            await sync.open_conversation(K1)
        assert sync.state == SubscriptionState.CLOSED
        assert sync.last_error is not None
