"""
Inbound frame validation for the chat protocol.

The only inbound frame a client may send is ``{"type": "chat", "message": str}``.
Checks run cheapest-first and the frame size is checked before any parsing,
so an oversized payload is never handed to the JSON decoder.
"""

import json
from dataclasses import dataclass
from typing import Any

from ..auth.validation import MAX_MESSAGE_LENGTH, is_valid_message
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

MAX_FRAME_BYTES = 1024

_HTML_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
    }
)


def escape_html(text: str) -> str:
    """Escape the five HTML-significant characters."""
    return text.translate(_HTML_ESCAPES)


class MessageValidationError(Exception):
    """An inbound frame was rejected; the frame is dropped and the connection stays open."""

    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message


@dataclass(frozen=True)
class ChatMessage:
    message: str


class MessageValidator:
    """Parses and validates inbound text frames."""

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES, max_message_length: int = MAX_MESSAGE_LENGTH) -> None:
        self.max_frame_bytes = max_frame_bytes
        self.max_message_length = max_message_length

    def parse_and_validate(self, data: str) -> ChatMessage:
        """
        Validate a raw text frame.

        Raises:
            MessageValidationError: error_type is one of oversized_frame,
                invalid_json, invalid_structure, unknown_type, invalid_message
        """
        frame_size = len(data.encode("utf-8"))
        if frame_size > self.max_frame_bytes:
            raise MessageValidationError(
                "oversized_frame", f"Frame of {frame_size} bytes exceeds limit of {self.max_frame_bytes}"
            )

        try:
            payload: Any = json.loads(data)
        except json.JSONDecodeError as e:
            raise MessageValidationError("invalid_json", f"Invalid JSON: {e.msg}") from e

        if not isinstance(payload, dict):
            raise MessageValidationError("invalid_structure", "Frame must be a JSON object")

        if payload.get("type") != "chat":
            raise MessageValidationError("unknown_type", f"Unsupported message type: {payload.get('type')!r}")

        message = payload.get("message")
        if not is_valid_message(message, self.max_message_length):
            raise MessageValidationError(
                "invalid_message", f"Message must be a string of 1 to {self.max_message_length} characters"
            )

        return ChatMessage(message=message)
