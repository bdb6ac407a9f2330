"""
RelayChat Server - Main Application Entry Point

``app`` is the ASGI application for ``uvicorn relaychat.main:app``.
``main()`` runs uvicorn programmatically with SIGINT and SIGTERM routed to
the shutdown coordinator, and exits with the coordinator's exit code.
"""

import asyncio
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import uvicorn

from .app.factory import create_app
from .app.lifespan_shutdown import ShutdownCoordinator
from .config import get_config
from .structured_logging.enhanced_logging_config import get_logger, setup_enhanced_logging

# Early logging setup - must happen before any logger creation
config = get_config()
setup_enhanced_logging(config.to_legacy_dict())

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app = create_app()

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RelayChatServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the shutdown coordinator."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, coordinator: ShutdownCoordinator) -> None:
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, coordinator.trigger, sig.name)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(
                sig,
                lambda signum, _frame: loop.call_soon_threadsafe(coordinator.trigger, signal.Signals(signum).name),
            )


async def serve(server: uvicorn.Server, coordinator: ShutdownCoordinator) -> int:
    """Serve until shutdown completes and return the process exit code."""
    _install_signal_handlers(asyncio.get_running_loop(), coordinator)
    await server.serve()

    if coordinator.result is None:
        # uvicorn stopped without running the lifespan exit
        result = await coordinator.shutdown()
        return result.exit_code
    return coordinator.result.exit_code


def main() -> None:
    """Start the RelayChat server with uvicorn."""
    container = app.state.container
    server_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        ws_max_size=config.realtime.max_frame_bytes,
        log_config=None,
        access_log=True,
    )
    server = RelayChatServer(server_config)
    container.shutdown_coordinator.attach_server(server)

    logger.info("Starting RelayChat server", host=config.server.host, port=config.server.port)
    exit_code = asyncio.run(serve(server, container.shutdown_coordinator))
    logger.info("RelayChat server exited", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
