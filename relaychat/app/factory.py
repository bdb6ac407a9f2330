"""
FastAPI application factory for RelayChat.

This module handles FastAPI app creation, middleware configuration,
and router registration.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..api.monitoring import monitoring_router
from ..api.real_time import realtime_router
from ..auth.endpoints import auth_router
from ..container import ApplicationContainer
from ..structured_logging.enhanced_logging_config import get_logger
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app(container: ApplicationContainer | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built container (tests inject in-memory stores here)

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    app = FastAPI(
        title="RelayChat API",
        description="Real-time broadcast chat over WebSockets",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container or ApplicationContainer()

    allowed_origins = list(app.state.container.config.security.allowed_origins)
    logger.info("CORS configuration", allow_origins=allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.include_router(auth_router)
    app.include_router(monitoring_router)
    app.include_router(realtime_router)

    return app
