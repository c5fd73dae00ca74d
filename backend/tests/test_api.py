"""End-to-end tests for the HTTP and WebSocket surface"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chaton.main import create_app
from chaton.utils.conversation_id import make_chat_id

from conftest import MEMORY_URL


@pytest.fixture
def client():
    app = create_app(MEMORY_URL, latency_compensation=False)
    with TestClient(app) as test_client:
        yield test_client


def sign_up(client, username):
    response = client.post("/api/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret123"
    })
    assert response.status_code == 201
    user = response.json()

    response = client.post("/api/auth/login", json={"username": username, "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["access_token"]
    return user, token, {"Authorization": f"Bearer {token}"}


class TestAuthRoutes:
    """Test registration and sign-in"""

    def test_register_and_me(self, client):
        user, _, headers = sign_up(client, "alice")

        response = client.get("/api/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["id"] == user["id"]

    def test_duplicate_registration(self, client):
        sign_up(client, "alice")
        response = client.post("/api/auth/register", json={
            "username": "alice",
            "email": "other@example.com",
            "password": "secret123"
        })
        assert response.status_code == 400

    def test_wrong_password(self, client):
        sign_up(client, "alice")
        response = client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
        assert response.status_code == 401

    def test_requires_token(self, client):
        assert client.get("/api/users").status_code in (401, 403)

    def test_logout(self, client):
        _, _, headers = sign_up(client, "alice")

        response = client.post("/api/auth/logout", headers=headers)
        assert response.status_code == 200


class TestRoster:
    """Test the user directory"""

    def test_signed_in_users_are_online(self, client):
        alice, _, headers = sign_up(client, "alice")
        bob, _, _ = sign_up(client, "bob")

        response = client.get("/api/users", headers=headers)

        assert response.status_code == 200
        roster = response.json()
        assert [u["id"] for u in roster] == [alice["id"], bob["id"]]
        assert all(u["is_online"] for u in roster)


class TestConversations:
    """Test opening conversations and message commands"""

    def test_send_edit_delete(self, client):
        alice, _, alice_headers = sign_up(client, "alice")
        bob, _, bob_headers = sign_up(client, "bob")
        chat_id = make_chat_id(alice["id"], bob["id"])

        response = client.post("/api/chats/open", json={"other_user_id": bob["id"]}, headers=alice_headers)
        assert response.status_code == 200
        assert response.json() == {"chat_id": chat_id, "state": "streaming", "error": None}

        response = client.post(f"/api/chats/{chat_id}/messages",
                               json={"text": "hi", "recipient_id": bob["id"]}, headers=alice_headers)
        assert response.status_code == 201
        message_id = response.json()["message_id"]

        log = client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()["messages"]
        assert [(m["id"], m["sender_id"], m["text"]) for m in log] == [(message_id, alice["id"], "hi")]

        response = client.put(f"/api/chats/{chat_id}/messages/{message_id}",
                              json={"text": "hello"}, headers=bob_headers)
        assert response.status_code == 400

        response = client.put(f"/api/chats/{chat_id}/messages/{message_id}",
                              json={"text": "hello"}, headers=alice_headers)
        assert response.status_code == 200
        log = client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()["messages"]
        assert log[0]["text"] == "hello"
        assert log[0]["edited"] is True

        response = client.delete(f"/api/chats/{chat_id}/messages/{message_id}", headers=alice_headers)
        assert response.status_code == 200
        assert client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()["messages"] == []

    def test_empty_message_rejected(self, client):
        alice, _, headers = sign_up(client, "alice")
        bob, _, _ = sign_up(client, "bob")
        chat_id = make_chat_id(alice["id"], bob["id"])

        response = client.post(f"/api/chats/{chat_id}/messages",
                               json={"text": "   ", "recipient_id": bob["id"]}, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation"

    def test_outsiders_cannot_read(self, client):
        alice, _, _ = sign_up(client, "alice")
        bob, _, _ = sign_up(client, "bob")
        _, _, eve_headers = sign_up(client, "eve")
        chat_id = make_chat_id(alice["id"], bob["id"])

        assert client.get(f"/api/chats/{chat_id}/messages", headers=eve_headers).status_code == 403
        response = client.post("/api/chats/open", json={"chat_id": chat_id}, headers=eve_headers)
        assert response.status_code == 403

    def test_open_needs_a_target(self, client):
        _, _, headers = sign_up(client, "alice")
        assert client.post("/api/chats/open", json={}, headers=headers).status_code == 422

    def test_close(self, client):
        _, _, headers = sign_up(client, "alice")
        bob, _, _ = sign_up(client, "bob")
        client.post("/api/chats/open", json={"other_user_id": bob["id"]}, headers=headers)

        response = client.post("/api/chats/close", headers=headers)

        assert response.json() == {"chat_id": None, "state": "closed", "error": None}
        assert client.get("/api/chats/active", headers=headers).json()["state"] == "closed"


class TestStream:
    """Test the conversation WebSocket"""

    def test_initial_status_event(self, client):
        _, token, _ = sign_up(client, "alice")

        with client.websocket_connect(f"/api/chats/ws?token={token}") as websocket:
            event = websocket.receive_json()

        assert event == {"type": "status", "data": {"chat_id": None, "state": "closed", "error": None}}

    def test_open_conversation_is_replayed(self, client):
        alice, token, headers = sign_up(client, "alice")
        bob, _, _ = sign_up(client, "bob")
        chat_id = make_chat_id(alice["id"], bob["id"])
        client.post("/api/chats/open", json={"other_user_id": bob["id"]}, headers=headers)

        with client.websocket_connect(f"/api/chats/ws?token={token}") as websocket:
            status_event = websocket.receive_json()
            log_event = websocket.receive_json()

        assert status_event["data"]["state"] == "streaming"
        assert log_event == {"type": "log", "data": {"chat_id": chat_id, "messages": []}}

    def test_bad_token_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/chats/ws?token=garbage") as websocket:
                websocket.receive_json()
