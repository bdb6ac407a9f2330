"""Application lifecycle management for RelayChat.

Startup initializes the container created by the app factory. Shutdown
joins the coordinator's shutdown sequence, so a lifespan-driven stop (the
test client, or uvicorn exiting for its own reasons) runs exactly the same
ordered stages as a signal-driven one.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..container import ApplicationContainer
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger("relaychat.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the container on startup, run the shutdown sequence on exit."""
    container: ApplicationContainer = app.state.container
    logger.info("Starting RelayChat server")

    await container.initialize()
    logger.info("RelayChat server started", allowed_origins=list(container.config.security.allowed_origins))
    yield

    logger.info("Shutting down RelayChat server")
    try:
        result = await container.shutdown_coordinator.shutdown()
    except asyncio.CancelledError:
        logger.warning("Shutdown interrupted", state=container.shutdown_coordinator.state.value)
        raise
    logger.info("RelayChat server shutdown complete", exit_code=result.exit_code)
