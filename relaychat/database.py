"""
Database configuration for RelayChat.

This module owns the SQLAlchemy async engine (and with it the connection
pool) used by the user table and the live-session store.

Initialization is lazy: the engine is created on first use, so a process
that never touches the database never opens a pool.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from .config.models import DatabaseConfig
from .exceptions import DatabaseError, ValidationError, create_error_context, log_and_raise
from .models.base import Base
from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Return the asyncpg flavour of a PostgreSQL URL."""
    if not database_url.startswith("postgresql"):
        log_and_raise(
            ValidationError,
            "Unsupported database URL. Only PostgreSQL is supported.",
            context=create_error_context(metadata={"operation": "database_initialization"}),
            user_friendly="Database configuration error - PostgreSQL required",
        )
    if database_url.startswith("postgresql+asyncpg"):
        return database_url
    return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)


class DatabaseManager:
    """Owns the async engine, its pool and the session maker."""

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self.engine: AsyncEngine | None = None
        self.session_maker: async_sessionmaker | None = None
        self.database_url: str = normalize_database_url(config.url)
        self._closed: bool = False

    def _initialize_database(self) -> None:
        if self.engine is not None:
            return
        if self._closed:
            raise DatabaseError("Database manager has been closed", operation="initialize")

        pool_kwargs: dict[str, Any] = {}
        if "test" in self.database_url:
            pool_kwargs["poolclass"] = NullPool
        else:
            pool_kwargs.update(
                {
                    "pool_size": self.config.pool_size,
                    "max_overflow": self.config.max_overflow,
                    "pool_timeout": self.config.pool_timeout,
                }
            )

        self.engine = create_async_engine(self.database_url, echo=False, pool_pre_ping=True, **pool_kwargs)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine created", pool_type="NullPool" if "test" in self.database_url else "QueuePool")

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def get_engine(self) -> AsyncEngine:
        """Get the database engine, initializing if necessary."""
        self._initialize_database()
        assert self.engine is not None
        return self.engine

    def get_session_maker(self) -> async_sessionmaker:
        """Get the session maker, initializing if necessary."""
        self._initialize_database()
        assert self.session_maker is not None
        return self.session_maker

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; commit on success, roll back on error."""
        session_maker = self.get_session_maker()
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create the users and active_tokens tables if they do not exist."""
        # Import models so they are registered on Base.metadata
        from .models import user  # noqa: F401  # pylint: disable=unused-import

        engine = self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified")

    async def close(self) -> None:
        """
        Dispose the engine and release every pooled connection.

        Raises:
            DatabaseError: If the pool could not be released
        """
        self._closed = True
        if self.engine is None:
            logger.debug("Database engine never initialized, nothing to release")
            return

        engine = self.engine
        self.engine = None
        self.session_maker = None
        try:
            await engine.dispose()
        except Exception as e:
            raise DatabaseError(
                f"Failed to release database pool: {e}",
                operation="dispose",
                details={"error_type": type(e).__name__},
            ) from e
        logger.info("Database connections closed")
