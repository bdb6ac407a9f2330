"""Input validators shared by the HTTP endpoints and the WebSocket protocol."""

import re

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128
MAX_MESSAGE_LENGTH = 250


def is_valid_username(username: str) -> bool:
    return (
        isinstance(username, str)
        and MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH
        and USERNAME_PATTERN.match(username) is not None
    )


def is_valid_password(password: str) -> bool:
    return isinstance(password, str) and MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH


def is_valid_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> bool:
    return isinstance(message, str) and 0 < len(message) <= max_length
