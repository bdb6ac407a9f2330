"""
Outbound event builders for the chat protocol.

Three event shapes go out on the wire:
- chat:          {"username", "message", "timestamp"}
- announcement:  {"type": "announcement", "message"}
- presence:      {"type": "userList", "users": [...]}
"""

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any


def build_chat_event(username: str, message: str, timestamp: datetime | None = None) -> dict[str, Any]:
    """Build a chat event; ``message`` must already be HTML-escaped."""
    moment = timestamp or datetime.now()
    return {"username": username, "message": message, "timestamp": moment.strftime("%X")}


def build_announcement(message: str) -> dict[str, Any]:
    return {"type": "announcement", "message": message}


def build_join_announcement(identity: str) -> dict[str, Any]:
    return build_announcement(f"{identity} has joined the chat room")


def build_user_list(users: Iterable[str]) -> dict[str, Any]:
    """Presence snapshot; names are deduplicated and sorted."""
    return {"type": "userList", "users": sorted(set(users))}


def serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event)
