"""
Shared SQLAlchemy DeclarativeBase for all models.

All models must inherit from this Base so they share one metadata object,
which init_db() uses to create the schema.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Shared declarative base for all RelayChat models."""
