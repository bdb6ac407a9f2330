"""
Exception hierarchy and error handling utilities for RelayChat.

Every domain error carries an ErrorContext and logs itself on construction,
so that operator-facing logs capture the failure even when the error is
handled further up the stack.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NoReturn

from fastapi import HTTPException

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Who and what an error concerns. Every field is optional."""

    user_id: str | None = None
    connection_id: str | None = None
    request_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "connection_id": self.connection_id,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class RelayChatError(Exception):
    """Base exception for all RelayChat errors."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self._log_error()

    def _log_error(self) -> None:
        logger.error(
            "RelayChat error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )


class AuthenticationError(RelayChatError):
    """Authentication and authorization errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, auth_type: str = "unknown", **kwargs):
        super().__init__(message, context, **kwargs)
        self.auth_type = auth_type
        self.details["auth_type"] = auth_type


class DatabaseError(RelayChatError):
    """Database operation errors."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        operation: str = "unknown",
        table: str | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.operation = operation
        self.table = table
        self.details["operation"] = operation
        if table:
            self.details["table"] = table


class StoreUnavailableError(DatabaseError):
    """The live-session store could not be queried."""


class ValidationError(RelayChatError):
    """Data validation errors."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        field: str | None = None,
        value: Any | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.field = field
        self.value = value
        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class ConfigurationError(RelayChatError):
    """Configuration and setup errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class LoggedHTTPException(HTTPException):
    """HTTPException that records itself in the log with request context."""

    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        context: ErrorContext | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.context = context or ErrorContext()
        log = logger.warning if status_code < 500 else logger.error
        log("HTTP error response", status_code=status_code, detail=detail, context=self.context.to_dict())


def create_error_context(**kwargs) -> ErrorContext:
    """Create an error context with the given parameters."""
    return ErrorContext(**kwargs)


def log_and_raise(
    exception_class: type[RelayChatError],
    message: str,
    context: ErrorContext | None = None,
    details: dict[str, Any] | None = None,
    user_friendly: str | None = None,
) -> NoReturn:
    """Raise ``exception_class``. The exception logs itself when it is built."""
    raise exception_class(
        message=message,
        context=context or create_error_context(),
        details=details,
        user_friendly=user_friendly,
    )
