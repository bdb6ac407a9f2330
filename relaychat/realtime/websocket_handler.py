"""
Per-connection WebSocket handling.

Each admitted connection runs handle_websocket_connection as its own task.
Frames from one connection are processed strictly in arrival order: a frame
is rate-checked, validated, escaped and broadcast before the next one is
read. Cleanup runs in ``finally`` so that every close path (client close,
rate-limit close, shutdown close, transport error) ends the same way.
"""

import uuid
from typing import TYPE_CHECKING

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_registry import SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON, Connection
from .envelope import build_chat_event
from .message_validator import MessageValidationError, escape_html
from .rate_limiter import RATE_LIMIT_CLOSE_CODE, RATE_LIMIT_CLOSE_REASON, MessageRateGovernor

if TYPE_CHECKING:
    from ..container import ApplicationContainer

logger = get_logger(__name__)


async def _close_quietly(websocket: WebSocket, code: int, reason: str) -> None:
    if websocket.application_state == WebSocketState.DISCONNECTED:
        return
    try:
        await websocket.close(code=code, reason=reason)
    except RuntimeError as e:
        # Close frame already sent, or the transport is gone
        logger.debug("WebSocket close skipped", code=code, error=str(e))


async def _handle_chat_frame(connection: Connection, data: str, services: "ApplicationContainer") -> None:
    try:
        chat = services.message_validator.parse_and_validate(data)
    except MessageValidationError as e:
        logger.warning(
            "Message validation failed",
            identity=connection.identity,
            connection_id=connection.connection_id,
            error_type=e.error_type,
            error_message=e.message,
        )
        return

    event = build_chat_event(connection.identity, escape_html(chat.message))
    await services.broadcaster.broadcast(event)


async def _handle_websocket_message_loop(connection: Connection, services: "ApplicationContainer") -> None:
    """Read frames until the connection closes."""
    websocket = connection.websocket

    while True:
        try:
            message = await websocket.receive()
        except RuntimeError as e:
            logger.debug("WebSocket receive after close", connection_id=connection.connection_id, error=str(e))
            break

        if message["type"] == "websocket.disconnect":
            logger.info(
                "WebSocket disconnected",
                identity=connection.identity,
                connection_id=connection.connection_id,
                code=message.get("code"),
            )
            break

        if not connection.governor.record():
            await _close_quietly(websocket, RATE_LIMIT_CLOSE_CODE, RATE_LIMIT_CLOSE_REASON)
            break

        data = message.get("text")
        if data is None:
            logger.warning(
                "Binary frame dropped",
                identity=connection.identity,
                connection_id=connection.connection_id,
            )
            continue

        await _handle_chat_frame(connection, data, services)


async def handle_websocket_connection(websocket: WebSocket, identity: str, services: "ApplicationContainer") -> None:
    """
    Serve an admitted WebSocket connection until it closes.

    Args:
        websocket: The upgrade request, already through the handshake gate
        identity: Display name resolved from the session token
        services: Container holding the registry, presence and broadcaster
    """
    realtime = services.config.realtime
    connection_id = str(uuid.uuid4())
    governor = MessageRateGovernor(
        max_messages=realtime.rate_limit_max_messages,
        window_seconds=realtime.rate_limit_window_seconds,
        connection_id=connection_id,
    )
    connection = Connection(websocket=websocket, identity=identity, governor=governor, connection_id=connection_id)

    await websocket.accept()
    governor.start()

    try:
        if not await services.presence_service.on_connect(connection):
            await _close_quietly(websocket, SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON)
            return
        await _handle_websocket_message_loop(connection, services)
    except Exception as e:
        logger.error(
            "Error handling WebSocket connection",
            identity=identity,
            connection_id=connection_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        services.exception_tracker.track_exception(
            e,
            context={"operation": "websocket_connection"},
            user_id=identity,
            connection_id=connection_id,
        )
        await _close_quietly(websocket, 1011, "Internal error")
    finally:
        await services.presence_service.on_disconnect(connection)
