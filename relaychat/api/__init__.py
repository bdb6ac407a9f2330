"""
API module for RelayChat.

HTTP and WebSocket routes. The auth routes live in relaychat.auth.endpoints.
"""

from .monitoring import monitoring_router
from .real_time import realtime_router

__all__ = ["monitoring_router", "realtime_router"]
