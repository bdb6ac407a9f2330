"""
Per-connection message rate limiting.

Each connection owns a fixed-window governor: a counter that a background
task resets to zero every ``window_seconds``. The message that pushes the
count past ``max_messages`` is refused, and the connection is closed with
policy-violation code 1008.
"""

import asyncio
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

RATE_LIMIT_CLOSE_CODE = 1008
RATE_LIMIT_CLOSE_REASON = "Rate limit exceeded"


class MessageRateGovernor:
    """Fixed-window message counter for a single connection."""

    def __init__(self, max_messages: int = 20, window_seconds: float = 10.0, connection_id: str | None = None) -> None:
        """
        Initialize the governor.

        Args:
            max_messages: Messages allowed per window (default: 20)
            window_seconds: Window length in seconds (default: 10.0)
            connection_id: Connection the governor belongs to, for logging
        """
        self.max_messages = max_messages
        self.window_seconds = window_seconds
        self.connection_id = connection_id
        self.count = 0
        self._window_task: asyncio.Task | None = None
        self._closed = False

    def start(self) -> None:
        """Start the window reset task. Must be called from a running loop."""
        if self._closed or self._window_task is not None:
            return
        self._window_task = asyncio.create_task(self._run_window(), name=f"rate-window-{self.connection_id}")

    async def _run_window(self) -> None:
        while True:
            await asyncio.sleep(self.window_seconds)
            self.reset()

    def record(self) -> bool:
        """
        Count one inbound message.

        Returns:
            bool: True if within the limit, False if the limit is exceeded
        """
        self.count += 1
        if self.count > self.max_messages:
            logger.warning(
                "Message rate limit exceeded",
                connection_id=self.connection_id,
                count=self.count,
                max_messages=self.max_messages,
            )
            return False
        return True

    def reset(self) -> None:
        self.count = 0

    def close(self) -> None:
        """Cancel the window task. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._window_task is not None and not self._window_task.done():
            self._window_task.cancel()
        self._window_task = None

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_rate_limit_info(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "max_messages": self.max_messages,
            "window_seconds": self.window_seconds,
            "messages_remaining": max(0, self.max_messages - self.count),
            "closed": self._closed,
        }
