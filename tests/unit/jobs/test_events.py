"""Tests for job events and sinks."""

import logging

import pytest

from vno.db.types import QueueName
from vno.jobs.events import (
    CompositeEventSink,
    JobEvent,
    JobEventType,
    LoggingEventSink,
    MemoryEventSink,
    safe_emit,
)


def _event(event_type: JobEventType = JobEventType.TRANSCRIPTION_STARTED) -> JobEvent:
    return JobEvent(
        type=event_type,
        queue=QueueName.TRANSCRIBE,
        job_id="job-1",
        note_id="note-1",
        correlation_id="abc",
    )


class ExplodingSink:
    def emit(self, event: JobEvent) -> None:
        raise RuntimeError("down")


class TestJobEventType:
    """Tests for JobEventType.for_queue()."""

    @pytest.mark.parametrize(
        ("queue", "outcome", "expected"),
        [
            (QueueName.TRANSCRIBE, "started", JobEventType.TRANSCRIPTION_STARTED),
            (QueueName.TRANSCRIBE, "failed", JobEventType.TRANSCRIPTION_FAILED),
            (QueueName.SUMMARIZE, "completed", JobEventType.SUMMARIZATION_COMPLETED),
        ],
    )
    def test_for_queue(self, queue, outcome, expected) -> None:
        assert JobEventType.for_queue(queue, outcome) is expected


class TestSinks:
    """Tests for the event sinks."""

    def test_event_to_dict(self) -> None:
        data = _event().to_dict()
        assert data["type"] == "transcription_started"
        assert data["queue"] == "transcribe"
        assert data["timestamp"]

    def test_memory_sink(self) -> None:
        sink = MemoryEventSink()
        sink.emit(_event())
        assert sink.types() == [JobEventType.TRANSCRIPTION_STARTED]

    def test_logging_sink_levels(self, caplog) -> None:
        sink = LoggingEventSink()
        with caplog.at_level(logging.INFO, logger="vno.events"):
            sink.emit(_event())
            sink.emit(_event(JobEventType.TRANSCRIPTION_FAILED))
        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING]
        assert caplog.records[0].event["job_id"] == "job-1"

    def test_composite_isolates_failures(self) -> None:
        """One broken sink doesn't stop delivery to the others."""
        memory = MemoryEventSink()
        CompositeEventSink([ExplodingSink(), memory]).emit(_event())
        assert len(memory.events) == 1

    def test_safe_emit_logs_and_swallows(self, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="vno.jobs.events"):
            safe_emit(ExplodingSink(), _event())
        assert "ExplodingSink failed" in caplog.text

    def test_safe_emit_without_sink(self) -> None:
        safe_emit(None, _event())
