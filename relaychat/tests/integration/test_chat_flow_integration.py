"""
End-to-end tests through the ASGI app.

The FastAPI test client runs every WebSocket session on one event loop, so the
registry, presence and broadcast behave as they do under uvicorn.
"""

import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relaychat.app.factory import create_app
from relaychat.config.models import AppConfig
from relaychat.container import ApplicationContainer

pytestmark = pytest.mark.integration

ORIGIN = {"origin": "http://localhost:5173"}


@pytest.fixture
def fast_config(monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.setenv("REALTIME_PRESENCE_REBROADCAST_DELAY", "0.05")
    monkeypatch.setenv("REALTIME_CLOSE_TIMEOUT", "2.0")
    return AppConfig()


@pytest.fixture
def services(fast_config, session_store, user_store) -> ApplicationContainer:
    return ApplicationContainer(fast_config, session_store=session_store, user_store=user_store)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def _receive_until(websocket, predicate, limit: int = 20) -> dict:
    for _ in range(limit):
        message = websocket.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message not received")


class TestAdmission:
    def test_missing_token_rejected_before_accept(self, client) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/", headers=ORIGIN):
                pass

        assert exc_info.value.code == 1008

    def test_bad_origin_rejected(self, client, issue_token) -> None:
        token = issue_token("alice")

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/?token={token}", headers={"origin": "http://evil.example.com"}):
                pass

    def test_rejection_leaves_registry_untouched(self, client, services) -> None:
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage", headers=ORIGIN):
                pass

        assert len(services.registry) == 0

    def test_ws_path_is_served(self, client, issue_token) -> None:
        with client.websocket_connect(f"/ws?token={issue_token('alice')}", headers=ORIGIN) as websocket:
            assert websocket.receive_json() == {"type": "userList", "users": ["alice"]}


class TestChatFlow:
    def test_alice_and_bob(self, client, issue_token) -> None:
        with client.websocket_connect(f"/?token={issue_token('alice')}", headers=ORIGIN) as alice:
            assert alice.receive_json() == {"type": "userList", "users": ["alice"]}

            with client.websocket_connect(f"/?token={issue_token('bob')}", headers=ORIGIN) as bob:
                assert alice.receive_json() == {"type": "announcement", "message": "bob has joined the chat room"}
                assert alice.receive_json() == {"type": "userList", "users": ["alice", "bob"]}
                assert bob.receive_json() == {"type": "userList", "users": ["alice", "bob"]}

                alice.send_text(json.dumps({"type": "chat", "message": "<hi>"}))

                from_alice = alice.receive_json()
                at_bob = bob.receive_json()
                assert from_alice == at_bob
                assert at_bob["username"] == "alice"
                assert at_bob["message"] == "&lt;hi&gt;"

            assert _receive_until(alice, lambda m: m.get("type") == "userList") == {
                "type": "userList",
                "users": ["alice"],
            }

    def test_invalid_frames_are_dropped(self, client, issue_token) -> None:
        with client.websocket_connect(f"/?token={issue_token('alice')}", headers=ORIGIN) as alice:
            alice.receive_json()

            alice.send_text("{" + "x" * 1024)
            alice.send_text(json.dumps({"type": "chat", "message": "x" * 251}))
            alice.send_text("not json")
            alice.send_text(json.dumps({"type": "chat", "message": "x" * 250}))

            message = alice.receive_json()
            assert message["message"] == "x" * 250

    def test_rate_limit_closes_with_1008(self, client, issue_token) -> None:
        with client.websocket_connect(f"/?token={issue_token('alice')}", headers=ORIGIN) as alice:
            alice.receive_json()
            for n in range(21):
                alice.send_text(json.dumps({"type": "chat", "message": str(n)}))

            received = []
            with pytest.raises(WebSocketDisconnect) as exc_info:
                while True:
                    received.append(alice.receive_json())

        assert len(received) == 20
        assert exc_info.value.code == 1008

    def test_logout_revokes_token_for_next_handshake(self, client) -> None:
        client.post("/api/register", json={"username": "alice", "password": "secret123"})
        token = client.post("/api/login", json={"username": "alice", "password": "secret123"}).json()["token"]

        with client.websocket_connect(f"/?token={token}", headers=ORIGIN) as alice:
            assert alice.receive_json()["users"] == ["alice"]

        response = client.post("/api/logout", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/?token={token}", headers=ORIGIN):
                pass
        assert exc_info.value.code == 1008


class TestShutdown:
    def test_shutdown_closes_connections_and_refuses_new_ones(self, client, services, issue_token) -> None:
        token = issue_token("alice")
        with client.websocket_connect(f"/?token={token}", headers=ORIGIN) as alice:
            alice.receive_json()

            pending = client.portal.start_task_soon(services.shutdown_coordinator.shutdown)

            with pytest.raises(WebSocketDisconnect) as exc_info:
                alice.receive_json()
            assert exc_info.value.code == 1001

        result = pending.result(timeout=5)
        assert result.exit_code == 0
        assert result.failed_stages == ()
        assert len(services.registry) == 0

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/?token={token}", headers=ORIGIN):
                pass

        health = client.get("/health").json()
        assert health["state"] == "closed"
        assert health["accepting_connections"] is False
