"""Structured logging module for VNO.

Provides configurable logging with JSON format support and file rotation,
with worker/job/note context injected into every record.
"""

from vno.logging.config import configure_logging
from vno.logging.context import (
    WorkerContextFilter,
    clear_worker_context,
    correlation_context,
    get_correlation_id,
    get_worker_context,
    set_worker_context,
    worker_context,
)
from vno.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "WorkerContextFilter",
    "clear_worker_context",
    "configure_logging",
    "correlation_context",
    "get_correlation_id",
    "get_worker_context",
    "set_worker_context",
    "worker_context",
]
