"""
Connection registry and presence for the chat room.

The registry is the single source of truth for who is connected. Mutations
take an asyncio.Lock and readers iterate over copies, so a broadcast never
observes a half-inserted or half-removed connection.

PresenceService layers the join/leave protocol on top:
- a join is announced to the other participants, then a fresh user list
  goes to everybody
- a leave schedules a delayed user list; further leaves inside the delay
  reuse the pending rebroadcast, and a join cancels it because the join
  broadcasts presence itself

During shutdown the registry is closed under its lock before the open
connections are snapshotted, so a handshake that finishes late is refused
instead of joining a registry that has already been drained.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket

from ..structured_logging.enhanced_logging_config import get_logger
from .envelope import build_join_announcement, build_user_list
from .rate_limiter import MessageRateGovernor

if TYPE_CHECKING:
    from .message_broadcaster import MessageBroadcaster

logger = get_logger(__name__)

SHUTDOWN_CLOSE_CODE = 1001
SHUTDOWN_CLOSE_REASON = "Server shutting down"


@dataclass(eq=False)
class Connection:
    """One admitted WebSocket session."""

    websocket: WebSocket
    identity: str
    governor: MessageRateGovernor
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "identity" and "identity" in self.__dict__:
            raise AttributeError("Connection identity cannot be changed")
        super().__setattr__(name, value)


class ConnectionRegistry:
    """Set of open connections keyed by connection id."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Refuse every later insert. Connections already registered stay until removed."""
        async with self._lock:
            self._closed = True

    async def insert(self, connection: Connection) -> bool:
        """Register a connection. Returns False once the registry is closed."""
        async with self._lock:
            if self._closed:
                return False
            self._connections[connection.connection_id] = connection
        logger.debug(
            "Connection registered",
            connection_id=connection.connection_id,
            identity=connection.identity,
            open_connections=len(self._connections),
        )
        return True

    async def remove(self, connection: Connection) -> bool:
        """Remove a connection. Returns False if it was not registered."""
        async with self._lock:
            removed = self._connections.pop(connection.connection_id, None) is not None
        if removed:
            logger.debug(
                "Connection unregistered",
                connection_id=connection.connection_id,
                identity=connection.identity,
                open_connections=len(self._connections),
            )
        return removed

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def open_connections(self) -> list[Connection]:
        return list(self._connections.values())

    def snapshot_identities(self) -> set[str]:
        return {connection.identity for connection in list(self._connections.values())}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return isinstance(connection, Connection) and connection.connection_id in self._connections


class PresenceService:
    """Join announcements and user-list broadcasts."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: "MessageBroadcaster",
        rebroadcast_delay: float = 1.0,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.rebroadcast_delay = rebroadcast_delay
        self._pending: asyncio.Task | None = None
        self._rebroadcasts: set[asyncio.Task] = set()
        self._closed = False

    @property
    def has_pending_rebroadcast(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def broadcast_presence(self) -> dict[str, Any]:
        return await self.broadcaster.broadcast(build_user_list(self.registry.snapshot_identities()))

    async def on_connect(self, connection: Connection) -> bool:
        """Register and announce a connection. Returns False if the registry is closed for shutdown."""
        if not await self.registry.insert(connection):
            logger.info(
                "Participant refused, registry closed",
                identity=connection.identity,
                connection_id=connection.connection_id,
            )
            return False
        logger.info("Participant joined", identity=connection.identity, connection_id=connection.connection_id)
        await self.broadcaster.broadcast(build_join_announcement(connection.identity), exclude=connection)
        self._cancel_pending()
        await self.broadcast_presence()
        return True

    async def on_disconnect(self, connection: Connection) -> None:
        """Runs on every close path; a second call for the same connection is a no-op."""
        connection.governor.close()
        if not await self.registry.remove(connection):
            return
        logger.info("Participant left", identity=connection.identity, connection_id=connection.connection_id)
        self._schedule_rebroadcast()

    def _schedule_rebroadcast(self) -> None:
        if self._closed or self.has_pending_rebroadcast:
            return
        self._pending = asyncio.create_task(self._delayed_rebroadcast(), name="presence-rebroadcast")
        self._rebroadcasts.add(self._pending)
        self._pending.add_done_callback(self._rebroadcasts.discard)

    async def _delayed_rebroadcast(self) -> None:
        await asyncio.sleep(self.rebroadcast_delay)
        # Leaves after this point schedule a new rebroadcast; close() still awaits this one
        self._pending = None
        await self.broadcast_presence()

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def close(self) -> None:
        """
        Cancel a rebroadcast that is still waiting and finish one that is already sending.

        No rebroadcast is scheduled afterwards.
        """
        self._closed = True
        self._cancel_pending()
        if self._rebroadcasts:
            await asyncio.gather(*list(self._rebroadcasts), return_exceptions=True)
