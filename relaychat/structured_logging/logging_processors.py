"""
Logging processors for structlog event processing.

This module provides processors for sanitizing sensitive data and adding
correlation IDs to log entries.
"""

import re
import uuid
from typing import Any

# Sensitive patterns that should be redacted
# These patterns match whole words or specific suffixes/prefixes
SENSITIVE_PATTERNS = [
    r"\bpassword\b",
    r"\bpassword_hashed\b",
    r"\btoken\b",
    r"_token\b",
    r"\bsecret\b",
    r"_secret\b",
    r"_key\b",  # Matches fields ending with _key (api_key, private_key, etc.)
    r"^key$",
    r"\bcredential\b",
    r"\bjwt\b",
    r"\bbearer\b",
    r"\bauthorization\b",
]

# Safe field names that should never be redacted even if they match patterns
SAFE_FIELDS = {
    "token_length",
    "connection_key",
}


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in SAFE_FIELDS:
        return False
    return any(re.search(pattern, key_lower) for pattern in SENSITIVE_PATTERNS)


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    This processor redacts passwords, tokens and credentials from log
    entries so that bearer credentials never reach a log sink.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        """Recursively sanitize dictionary values."""
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif _is_sensitive(str(key)):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def add_correlation_id(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Add correlation ID to log entries if not already present.

    Request-scoped code binds its own correlation_id through contextvars;
    everything else gets a fresh one per entry.
    """
    if "correlation_id" not in event_dict:
        event_dict["correlation_id"] = str(uuid.uuid4())

    return event_dict


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from a rendered log line."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)
