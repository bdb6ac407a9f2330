"""
Live-session store for issued tokens.

A token is live while its active_tokens row exists. Logout deletes the row,
so revocation takes effect on the very next lookup even though the token's
signature stays valid until it expires.
"""

from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from ..database import DatabaseManager
from ..exceptions import StoreUnavailableError
from ..models.user import ActiveToken
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class SessionStoreProtocol(Protocol):
    """What the token validator and the auth endpoints need from a session store."""

    async def exists(self, token: str) -> bool: ...

    async def store(self, username: str, token: str) -> None: ...

    async def revoke(self, token: str) -> bool: ...


class SessionStore:
    """Session store backed by the active_tokens table."""

    def __init__(self, database_manager: DatabaseManager) -> None:
        self.database_manager = database_manager

    async def exists(self, token: str) -> bool:
        """
        Check whether the token is still live.

        Raises:
            StoreUnavailableError: If the store could not be queried
        """
        try:
            async with self.database_manager.session() as session:
                result = await session.execute(select(ActiveToken.username).where(ActiveToken.token == token))
                return result.scalar_one_or_none() is not None
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                "Session store lookup failed",
                operation="exists",
                table="active_tokens",
                details={"error_type": type(e).__name__},
            ) from e

    async def store(self, username: str, token: str) -> None:
        """Record a freshly issued token, replacing the user's previous one."""
        try:
            async with self.database_manager.session() as session:
                await session.execute(delete(ActiveToken).where(ActiveToken.username == username))
                session.add(ActiveToken(token=token, username=username))
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                "Session store write failed",
                operation="store",
                table="active_tokens",
                details={"error_type": type(e).__name__, "username": username},
            ) from e
        logger.info("Session token stored", username=username)

    async def revoke(self, token: str) -> bool:
        """Delete the token. Returns True if a live token was removed."""
        try:
            async with self.database_manager.session() as session:
                result = await session.execute(delete(ActiveToken).where(ActiveToken.token == token))
                removed = bool(result.rowcount)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                "Session store delete failed",
                operation="revoke",
                table="active_tokens",
                details={"error_type": type(e).__name__},
            ) from e
        logger.info("Session token revoked", removed=removed)
        return removed
