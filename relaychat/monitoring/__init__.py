"""Monitoring package for RelayChat."""

from relaychat.monitoring.exception_tracker import ExceptionRecord, ExceptionStats, ExceptionTracker

__all__ = [
    "ExceptionRecord",
    "ExceptionStats",
    "ExceptionTracker",
]
