"""
Message broadcasting to every open connection.

The event is serialised once and the same text is handed to every target,
so all recipients receive byte-identical payloads. Sends run concurrently;
a failed send is logged and recorded in telemetry but never propagates and
never closes the failing socket. That connection's own receive loop notices
the failure and runs the normal close path.
"""

import asyncio
from typing import Any

from starlette.websockets import WebSocketState

from ..monitoring.exception_tracker import ExceptionTracker
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_registry import Connection, ConnectionRegistry
from .envelope import serialize_event

logger = get_logger(__name__)


def _is_open(connection: Connection) -> bool:
    websocket = connection.websocket
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class MessageBroadcaster:
    """Fans events out to the connections in a registry."""

    def __init__(self, registry: ConnectionRegistry, exception_tracker: ExceptionTracker | None = None) -> None:
        """
        Initialize the broadcaster.

        Args:
            registry: Registry whose connections receive broadcasts
            exception_tracker: Telemetry sink for failed sends
        """
        self.registry = registry
        self.exception_tracker = exception_tracker

    async def broadcast(self, event: dict[str, Any], exclude: Connection | None = None) -> dict[str, Any]:
        """
        Send an event to every open connection except ``exclude``.

        Returns:
            dict: Broadcast delivery statistics
        """
        payload = serialize_event(event)
        connections = self.registry.open_connections()

        broadcast_stats: dict[str, Any] = {
            "total_targets": len(connections),
            "excluded": 0,
            "skipped_closed": 0,
            "successful_deliveries": 0,
            "failed_deliveries": 0,
        }

        targets: list[Connection] = []
        for connection in connections:
            if exclude is not None and connection is exclude:
                broadcast_stats["excluded"] += 1
            elif not _is_open(connection):
                broadcast_stats["skipped_closed"] += 1
            else:
                targets.append(connection)

        if not targets:
            return broadcast_stats

        delivery_results = await asyncio.gather(
            *[connection.websocket.send_text(payload) for connection in targets],
            return_exceptions=True,
        )

        for connection, result in zip(targets, delivery_results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                broadcast_stats["failed_deliveries"] += 1
                logger.warning(
                    "Error sending broadcast to connection",
                    connection_id=connection.connection_id,
                    identity=connection.identity,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                if self.exception_tracker is not None:
                    self.exception_tracker.track_exception(
                        result,
                        context={"operation": "broadcast", "event_type": event.get("type", "chat")},
                        user_id=connection.identity,
                        connection_id=connection.connection_id,
                        severity="warning",
                    )
            else:
                broadcast_stats["successful_deliveries"] += 1

        logger.debug("Broadcast delivered", event_type=event.get("type", "chat"), stats=broadcast_stats)
        return broadcast_stats
