"""
User and live-session token models.

A user row holds the Argon2 password hash. An active_tokens row exists for
as long as the token issued at login is live; logout deletes it.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """Registered chat participant."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(length=36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String(length=50), unique=True, nullable=False, index=True)
    password_hashed: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, username={self.username!r})>"


class ActiveToken(Base):
    """
    A session token that has not been revoked.

    One row per username: logging in again replaces the previous token.
    """

    __tablename__ = "active_tokens"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    username: Mapped[str] = mapped_column(String(length=50), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ActiveToken(username={self.username!r})>"
