"""
Real-time communication endpoints for RelayChat.

The WebSocket is served at ``/`` (where the original clients connect) and at
``/ws``. Admission runs before the upgrade is accepted.
"""

from fastapi import APIRouter, WebSocket

from ..container import ApplicationContainer
from ..realtime.handshake import AdmissionError
from ..realtime.websocket_handler import handle_websocket_connection
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(tags=["realtime"])


def _container(websocket: WebSocket) -> ApplicationContainer:
    return websocket.app.state.container


async def _serve(websocket: WebSocket) -> None:
    container = _container(websocket)
    gate = container.handshake_gate

    try:
        identity = await gate.admit(websocket)
    except AdmissionError as e:
        await gate.reject(websocket, e)
        return

    await handle_websocket_connection(websocket, identity, container)


@realtime_router.websocket("/")
async def websocket_root(websocket: WebSocket) -> None:
    """Chat WebSocket at the server root."""
    await _serve(websocket)


@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Chat WebSocket."""
    await _serve(websocket)
