"""Job lifecycle events and notification sinks.

Workers emit a JobEvent when a job starts, completes, fails or is
scheduled for retry. Sinks deliver events elsewhere (logs, tests, a
future notification service). A failing sink is logged and ignored so
notification trouble never fails a job.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from vno.core.datetime_utils import utcnow_iso
from vno.db.types import QueueName

logger = logging.getLogger(__name__)


class JobEventType(Enum):
    """Kinds of job lifecycle events."""

    TRANSCRIPTION_STARTED = "transcription_started"
    TRANSCRIPTION_COMPLETED = "transcription_completed"
    TRANSCRIPTION_FAILED = "transcription_failed"
    SUMMARIZATION_STARTED = "summarization_started"
    SUMMARIZATION_COMPLETED = "summarization_completed"
    SUMMARIZATION_FAILED = "summarization_failed"
    JOB_RETRY_SCHEDULED = "job_retry_scheduled"

    @classmethod
    def for_queue(cls, queue: QueueName, outcome: str) -> JobEventType:
        """Event type for a queue and outcome ("started", "completed", "failed")."""
        prefix = "TRANSCRIPTION" if queue == QueueName.TRANSCRIBE else "SUMMARIZATION"
        return cls[f"{prefix}_{outcome.upper()}"]


@dataclass(frozen=True)
class JobEvent:
    """Something that happened to a job."""

    type: JobEventType
    queue: QueueName
    job_id: str
    note_id: str
    correlation_id: str
    timestamp: str = field(default_factory=utcnow_iso)
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "queue": self.queue.value,
            "job_id": self.job_id,
            "note_id": self.note_id,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "detail": self.detail,
        }


class EventSink(Protocol):
    """Receiver of job events."""

    def emit(self, event: JobEvent) -> None:
        """Deliver one event."""
        ...


class LoggingEventSink:
    """Writes each event as a structured log line."""

    def __init__(self, logger_name: str = "vno.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(self, event: JobEvent) -> None:
        level = logging.WARNING if event.type.value.endswith("failed") else logging.INFO
        self._logger.log(
            level,
            "%s job=%s note=%s",
            event.type.value,
            event.job_id,
            event.note_id,
            extra={"event": event.to_dict()},
        )


class MemoryEventSink:
    """Collects events in a list. Used by tests."""

    def __init__(self) -> None:
        self._events: list[JobEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: JobEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[JobEvent]:
        """Snapshot of the events received so far."""
        with self._lock:
            return list(self._events)

    def types(self) -> list[JobEventType]:
        """Event types in order of arrival."""
        return [event.type for event in self.events]


class CompositeEventSink:
    """Delivers every event to several sinks."""

    def __init__(self, sinks: list[EventSink]) -> None:
        self.sinks = sinks

    def emit(self, event: JobEvent) -> None:
        for sink in self.sinks:
            safe_emit(sink, event)


def safe_emit(sink: EventSink | None, event: JobEvent) -> None:
    """Emit to a sink, logging and swallowing sink failures."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception:
        logger.exception(
            "Event sink %s failed for %s", type(sink).__name__, event.type.value
        )
