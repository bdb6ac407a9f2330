"""Application shutdown logic.

ShutdownCoordinator drives the server from RUNNING through DRAINING to
CLOSED. The sequence runs at most once per process: a signal, the FastAPI
lifespan exit and any other caller all share the same shutdown task.

Stages run in order and each one's failure is contained:

1. stop_accepting   (critical)      close the handshake gate and listeners
2. close_realtime   (non-critical)  close the registry, then every connection with 1001
3. flush_telemetry  (non-critical)  bounded flush of buffered exceptions
4. release_store    (critical)      dispose the database pool

The exit code is 0 when every critical stage succeeded, otherwise 1.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..database import DatabaseManager
from ..monitoring.exception_tracker import ExceptionTracker
from ..realtime.connection_registry import (
    SHUTDOWN_CLOSE_CODE,
    SHUTDOWN_CLOSE_REASON,
    Connection,
    ConnectionRegistry,
    PresenceService,
)
from ..realtime.handshake import HandshakeGate
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger("relaychat.lifespan.shutdown")

DRAIN_POLL_INTERVAL = 0.05


class ShutdownState(StrEnum):
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass(frozen=True)
class ShutdownResult:
    exit_code: int
    failed_stages: tuple[str, ...] = field(default_factory=tuple)


class ShutdownCoordinator:
    """Ordered, idempotent graceful shutdown."""

    def __init__(
        self,
        handshake_gate: HandshakeGate,
        registry: ConnectionRegistry,
        presence_service: PresenceService,
        exception_tracker: ExceptionTracker,
        database_manager: DatabaseManager,
        close_timeout: float = 5.0,
        telemetry_flush_timeout: float = 2.0,
    ) -> None:
        self.handshake_gate = handshake_gate
        self.registry = registry
        self.presence_service = presence_service
        self.exception_tracker = exception_tracker
        self.database_manager = database_manager
        self.close_timeout = close_timeout
        self.telemetry_flush_timeout = telemetry_flush_timeout

        self.state = ShutdownState.RUNNING
        self.result: ShutdownResult | None = None
        self._server: Any = None
        self._task: asyncio.Task | None = None

    def attach_server(self, server: Any) -> None:
        """Attach the uvicorn.Server whose listeners are closed in the first stage."""
        self._server = server

    def trigger(self, signal_name: str | None = None) -> asyncio.Task:
        """
        Start the shutdown sequence if it is not already running.

        Safe to call from a loop signal handler. Must be called on the event loop thread.
        """
        if self._task is None:
            logger.info("Shutdown requested", signal=signal_name, open_connections=len(self.registry))
            self.state = ShutdownState.DRAINING
            self._task = asyncio.get_running_loop().create_task(self._run(), name="relaychat-shutdown")
        else:
            logger.debug("Shutdown already in progress", signal=signal_name, state=self.state.value)
        return self._task

    async def shutdown(self) -> ShutdownResult:
        """Run (or join) the shutdown sequence and return its result."""
        return await asyncio.shield(self.trigger())

    async def _run(self) -> ShutdownResult:
        stages: list[tuple[str, Callable[[], Awaitable[None]], bool]] = [
            ("stop_accepting", self._stop_accepting, True),
            ("close_realtime", self._close_realtime, False),
            ("flush_telemetry", self._flush_telemetry, False),
            ("release_store", self._release_store, True),
        ]

        failed: list[str] = []
        critical_failed = False
        for name, stage, critical in stages:
            logger.info("Shutdown stage starting", stage=name)
            try:
                await stage()
            except Exception as e:
                failed.append(name)
                critical_failed = critical_failed or critical
                logger.error(
                    "Shutdown stage failed",
                    stage=name,
                    critical=critical,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                self.exception_tracker.track_exception(
                    e,
                    context={"operation": "shutdown", "stage": name},
                    severity="critical" if critical else "error",
                )
            else:
                logger.info("Shutdown stage completed", stage=name)

        self.result = ShutdownResult(exit_code=1 if critical_failed else 0, failed_stages=tuple(failed))
        self.state = ShutdownState.CLOSED
        logger.info("Shutdown complete", exit_code=self.result.exit_code, failed_stages=list(self.result.failed_stages))

        if self._server is not None:
            self._server.should_exit = True
        return self.result

    async def _stop_accepting(self) -> None:
        self.handshake_gate.close()
        if self._server is None:
            return
        for listener in getattr(self._server, "servers", None) or []:
            listener.close()

    async def _close_connection(self, connection: Connection) -> None:
        connection.governor.close()
        try:
            await connection.websocket.close(code=SHUTDOWN_CLOSE_CODE, reason=SHUTDOWN_CLOSE_REASON)
        except RuntimeError as e:
            logger.debug("Connection already closed", connection_id=connection.connection_id, error=str(e))

    async def _close_realtime(self) -> None:
        await self.presence_service.close()
        # Handshakes still in flight are refused from here on
        await self.registry.close()

        connections = self.registry.open_connections()
        logger.info("Closing open connections", count=len(connections))
        results = await asyncio.gather(
            *[self._close_connection(connection) for connection in connections],
            return_exceptions=True,
        )
        for connection, result in zip(connections, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(
                    "Error closing connection during shutdown",
                    connection_id=connection.connection_id,
                    error=str(result),
                )

        await asyncio.wait_for(self._wait_for_drain(), timeout=self.close_timeout)

    async def _wait_for_drain(self) -> None:
        while len(self.registry):
            await asyncio.sleep(DRAIN_POLL_INTERVAL)

    async def _flush_telemetry(self) -> None:
        flushed = await self.exception_tracker.flush(timeout=self.telemetry_flush_timeout)
        logger.info("Telemetry flushed", records=flushed)

    async def _release_store(self) -> None:
        await self.database_manager.close()
