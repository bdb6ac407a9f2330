"""Account lookups and registration over the users table."""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database import DatabaseManager
from ..exceptions import DatabaseError
from ..models.user import User
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class UserStoreProtocol(Protocol):
    async def get_password_hash(self, username: str) -> str | None: ...

    async def create(self, username: str, password_hashed: str) -> bool: ...


class UserStore:
    """User accounts backed by the users table."""

    def __init__(self, database_manager: DatabaseManager) -> None:
        self.database_manager = database_manager

    async def get_password_hash(self, username: str) -> str | None:
        """Return the stored hash for ``username``, or None if there is no such account."""
        try:
            async with self.database_manager.session() as session:
                result = await session.execute(select(User.password_hashed).where(User.username == username))
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(
                "User lookup failed",
                operation="select",
                table="users",
                details={"error_type": type(e).__name__},
            ) from e

    async def create(self, username: str, password_hashed: str) -> bool:
        """
        Insert a new account.

        Returns:
            False if the username is already taken
        """
        try:
            async with self.database_manager.session() as session:
                session.add(User(username=username, password_hashed=password_hashed))
        except IntegrityError:
            logger.info("Registration rejected, username taken", username=username)
            return False
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(
                "User insert failed",
                operation="insert",
                table="users",
                details={"error_type": type(e).__name__, "username": username},
            ) from e
        logger.info("User registered", username=username)
        return True
