"""
Exception telemetry for RelayChat.

Failures that are handled locally (a send that failed during a broadcast,
a shutdown stage that could not complete) are recorded here as structured
records. Records are buffered in memory and shipped to the telemetry log
channel on flush(); the lifecycle coordinator flushes once, with a bounded
timeout, while the server shuts down.
"""

import asyncio
import traceback
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)
telemetry_logger = get_logger("relaychat.telemetry")


@dataclass
class ExceptionRecord:
    """Represents a tracked exception with its context."""

    exception_id: str
    exception_type: str
    exception_message: str
    timestamp: datetime
    traceback: str
    context: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    connection_id: str | None = None
    severity: str = "error"
    handled: bool = False


@dataclass
class ExceptionStats:
    """Statistics for exception tracking."""

    total_exceptions: int = 0
    exceptions_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unhandled_exceptions: int = 0
    critical_exceptions: int = 0
    dropped_records: int = 0
    flushed_records: int = 0


class ExceptionTracker:
    """Buffers exception records and flushes them to the telemetry channel."""

    def __init__(self, max_records: int = 10000):
        """
        Initialize the exception tracker.

        Args:
            max_records: Maximum number of records buffered between flushes
        """
        self.max_records = max_records
        self._buffer: list[ExceptionRecord] = []
        self.stats = ExceptionStats()
        logger.info("Exception tracker initialized", max_records=max_records)

    def track_exception(
        self,
        exception: BaseException,
        context: dict[str, Any] | None = None,
        user_id: str | None = None,
        connection_id: str | None = None,
        severity: str = "error",
        handled: bool = True,
    ) -> str:
        """
        Record an exception for later delivery.

        Returns:
            Unique exception ID
        """
        record = ExceptionRecord(
            exception_id=str(uuid.uuid4()),
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            timestamp=datetime.now(UTC),
            traceback="".join(traceback.format_exception(type(exception), exception, exception.__traceback__)),
            context=context or {},
            user_id=user_id,
            connection_id=connection_id,
            severity=severity,
            handled=handled,
        )

        self.stats.total_exceptions += 1
        self.stats.exceptions_by_type[record.exception_type] += 1
        if not handled:
            self.stats.unhandled_exceptions += 1
        if severity == "critical":
            self.stats.critical_exceptions += 1

        if len(self._buffer) >= self.max_records:
            # Oldest records go first
            self._buffer.pop(0)
            self.stats.dropped_records += 1
        self._buffer.append(record)

        return record.exception_id

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def _emit(self, records: list[ExceptionRecord]) -> int:
        for record in records:
            payload = asdict(record)
            payload["timestamp"] = record.timestamp.isoformat()
            telemetry_logger.error("Exception telemetry", **payload)
        return len(records)

    async def flush(self, timeout: float = 2.0) -> int:
        """
        Ship every buffered record to the telemetry channel.

        Args:
            timeout: Upper bound in seconds for the flush

        Returns:
            Number of records flushed

        Raises:
            asyncio.TimeoutError: If the flush did not complete in time
        """
        records, self._buffer = self._buffer, []
        if not records:
            return 0

        # On timeout the worker thread keeps the records it was handed
        flushed = await asyncio.wait_for(asyncio.to_thread(self._emit, records), timeout=timeout)
        self.stats.flushed_records += flushed
        return flushed

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_exceptions": self.stats.total_exceptions,
            "exceptions_by_type": dict(self.stats.exceptions_by_type),
            "unhandled_exceptions": self.stats.unhandled_exceptions,
            "critical_exceptions": self.stats.critical_exceptions,
            "dropped_records": self.stats.dropped_records,
            "flushed_records": self.stats.flushed_records,
            "pending_records": self.pending,
        }
