"""
Enhanced structlog-based logging configuration for RelayChat.

This module is the single entry point for the logging system: it wires
structlog on top of the standard library logging handlers, installs the
security sanitizer and correlation IDs, and routes uvicorn's own loggers
through the same handlers.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from .logging_processors import add_correlation_id, sanitize_sensitive_data, strip_ansi

# NOTE: Infrastructure code in this module uses structlog.get_logger() directly.
# All other modules must use get_logger() from this module.
logger = structlog.get_logger(__name__)

VALID_ENVIRONMENTS = ("local", "unit_test", "e2e_test", "production")
LOG_FILE_NAME = "relaychat.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


class _LoggingState:
    """State container for logging initialization to avoid global statements."""

    initialized: bool = False
    signature: str | None = None
    handlers: list[logging.Handler] = []


_logging_state = _LoggingState()


def detect_environment() -> str:
    """Best-effort environment detection when none is configured."""
    if "pytest" in sys.modules:
        return "unit_test"
    return "local"


def _human_renderer(bound_logger: Any, name: str, event_dict: dict[str, Any]) -> str:
    """Key-value renderer that strips ANSI escape sequences."""
    try:
        formatted = structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])(
            bound_logger, name, event_dict
        )
        return strip_ansi(formatted)
    except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: a renderer failure must never take the process down
        return f"Logging renderer error: {type(e).__name__}: {str(e)}"


def _select_renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer(default=str)
    if log_format == "colored":
        return structlog.dev.ConsoleRenderer(colors=True)
    return _human_renderer


def _build_handlers(environment: str, log_config: dict[str, Any]) -> list[logging.Handler]:
    """Create the stream handler and, unless disabled, the rotating file handler."""
    formatter = logging.Formatter("%(message)s")

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]

    if log_config.get("disable_logging", False) or environment == "unit_test":
        return handlers

    log_dir = Path(log_config.get("log_base", "logs")) / environment
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    except OSError as e:
        logger.warning("Could not create log file handler", log_dir=str(log_dir), error=str(e))

    return handlers


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_config: dict[str, Any] | None = None,
) -> None:
    """
    Configure structlog processors and the stdlib handlers behind them.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_config: Logging configuration dictionary
    """
    if environment is None:
        environment = detect_environment()
    log_config = log_config or {}

    base_processors = [
        # Security first - sanitize sensitive data
        sanitize_sensitive_data,
        add_correlation_id,
        merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    root_logger = logging.getLogger()
    for handler in _logging_state.handlers:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = _build_handlers(environment, log_config)
    for handler in handlers:
        root_logger.addHandler(handler)
    _logging_state.handlers = handlers
    level = logging.CRITICAL + 1 if log_config.get("disable_logging", False) else getattr(logging, log_level, logging.INFO)
    root_logger.setLevel(level)

    structlog.configure(
        processors=base_processors + [_select_renderer(log_config.get("format", "human"))],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from the legacy configuration dictionary.

    Args:
        config: Server configuration dictionary (AppConfig.to_legacy_dict())
        force_reconfigure: When True, tear down existing handlers before reconfiguring
    """
    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _logging_state.initialized and not force_reconfigure:
        get_logger("relaychat.structured_logging.setup").debug(
            "setup_enhanced_logging skipped; logging system already initialized",
            config_signature=_logging_state.signature,
        )
        return

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment", detect_environment())
    log_level = logging_config.get("level", "INFO")

    configure_enhanced_structlog(environment, log_level, logging_config)
    _configure_enhanced_uvicorn_logging()

    get_logger("relaychat.structured_logging.enhanced").info(
        "Enhanced logging system initialized",
        environment=environment,
        log_level=log_level,
        log_format=logging_config.get("format", "human"),
        log_base=logging_config.get("log_base", "logs"),
    )

    _logging_state.initialized = True
    _logging_state.signature = config_signature


def _configure_enhanced_uvicorn_logging() -> None:
    """Route uvicorn's loggers through our handlers."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a Structlog logger with the specified name.

    This is the public API for obtaining loggers. All application code
    should use this function rather than calling structlog.get_logger()
    directly.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured Structlog logger instance
    """
    return structlog.get_logger(name)


def bind_request_context(**kwargs: Any) -> None:
    """Bind values (connection_id, identity, ...) to every log entry in the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_request_context() -> None:
    """Clear values bound with bind_request_context()."""
    structlog.contextvars.clear_contextvars()
