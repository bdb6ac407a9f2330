"""Tests for the per-connection receive loop."""

import asyncio
import json
from types import SimpleNamespace

import pytest
import pytest_asyncio

from relaychat.api.real_time import _serve
from relaychat.realtime.websocket_handler import handle_websocket_connection

ORIGIN = "http://localhost:5173"


def _text(payload) -> dict:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return {"type": "websocket.receive", "text": data}


def _chat(message: str) -> dict:
    return _text({"type": "chat", "message": message})


@pytest_asyncio.fixture
async def services(container):
    yield container
    await container.presence_service.close()


class TestHandleWebsocketConnection:
    @pytest.mark.asyncio
    async def test_chat_is_escaped_and_echoed_to_sender(self, services, make_websocket) -> None:
        websocket = make_websocket()
        websocket.incoming = [_chat("<b>hi</b>")]

        await handle_websocket_connection(websocket, "alice", services)

        assert websocket.accepted
        chats = [m for m in websocket.messages() if "username" in m]
        assert len(chats) == 1
        assert chats[0]["username"] == "alice"
        assert chats[0]["message"] == "&lt;b&gt;hi&lt;/b&gt;"
        assert "timestamp" in chats[0]

    @pytest.mark.asyncio
    async def test_frames_processed_in_order(self, services, make_websocket) -> None:
        websocket = make_websocket()
        websocket.incoming = [_chat(str(n)) for n in range(5)]

        await handle_websocket_connection(websocket, "alice", services)

        chats = [m["message"] for m in websocket.messages() if "username" in m]
        assert chats == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_invalid_frames_dropped_connection_stays_open(self, services, make_websocket) -> None:
        websocket = make_websocket()
        websocket.incoming = [
            _text("not json"),
            _chat("x" * 251),
            _text({"type": "typing"}),
            {"type": "websocket.receive", "bytes": b"\x00\x01"},
            _chat("still here"),
        ]

        await handle_websocket_connection(websocket, "alice", services)

        chats = [m["message"] for m in websocket.messages() if "username" in m]
        assert chats == ["still here"]
        assert websocket.closed_with is None

    @pytest.mark.asyncio
    async def test_rate_limit_closes_with_1008(self, services, make_websocket) -> None:
        websocket = make_websocket()
        websocket.incoming = [_chat(str(n)) for n in range(25)]

        await handle_websocket_connection(websocket, "alice", services)

        chats = [m for m in websocket.messages() if "username" in m]
        assert len(chats) == 20
        assert websocket.closed_with == (1008, "Rate limit exceeded")
        assert len(services.registry) == 0

    @pytest.mark.asyncio
    async def test_cleanup_on_client_close(self, services, make_websocket) -> None:
        websocket = make_websocket()

        await handle_websocket_connection(websocket, "alice", services)

        assert len(services.registry) == 0
        assert services.presence_service.has_pending_rebroadcast

    @pytest.mark.asyncio
    async def test_new_connection_receives_user_list(self, services, make_websocket) -> None:
        websocket = make_websocket()

        await handle_websocket_connection(websocket, "alice", services)

        assert websocket.messages()[0] == {"type": "userList", "users": ["alice"]}

    @pytest.mark.asyncio
    async def test_closed_registry_refuses_with_1001(self, services, make_websocket) -> None:
        await services.registry.close()
        websocket = make_websocket()
        websocket.incoming = [_chat("too late")]

        await handle_websocket_connection(websocket, "alice", services)

        assert websocket.closed_with == (1001, "Server shutting down")
        assert websocket.sent == []
        assert len(services.registry) == 0
        assert not services.presence_service.has_pending_rebroadcast


class TestAdmissionDuringShutdown:
    @pytest.mark.asyncio
    async def test_handshake_waiting_on_store_is_refused_after_shutdown(
        self, services, session_store, make_websocket, issue_token
    ) -> None:
        token = issue_token("alice")
        looking_up = asyncio.Event()
        release = asyncio.Event()
        lookup = session_store.exists

        async def blocking_exists(credential: str) -> bool:
            looking_up.set()
            await release.wait()
            return await lookup(credential)

        session_store.exists = blocking_exists
        websocket = make_websocket(headers={"origin": ORIGIN}, query_params={"token": token})
        websocket.app = SimpleNamespace(state=SimpleNamespace(container=services))

        handshake = asyncio.create_task(_serve(websocket))
        await looking_up.wait()
        result = await services.shutdown_coordinator.shutdown()
        release.set()
        await handshake

        assert result.exit_code == 0
        assert not websocket.accepted
        assert websocket.closed_with == (1008, "shutting-down")
        assert websocket.sent == []
        assert len(services.registry) == 0
