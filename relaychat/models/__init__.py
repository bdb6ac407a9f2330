"""Database models for RelayChat."""

from .base import Base
from .user import ActiveToken, User

__all__ = ["Base", "User", "ActiveToken"]
