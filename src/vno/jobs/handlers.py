"""Per-queue job handlers.

A handler knows which provider to call for its queue and how to store the
result on the note. The worker owns everything else: claiming, status
changes on the way in, timeouts, failure classification and retries.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from vno.db.types import Note, NoteStatus, QueueName
from vno.jobs.exceptions import DuplicateActiveJob
from vno.jobs.payloads import JobPayload, SummarizePayload, TranscribePayload
from vno.jobs.queue import JobQueue
from vno.notes.repository import NoteRepository
from vno.providers.base import (
    SummarizationProvider,
    SummaryResult,
    TranscriptionProvider,
    TranscriptionResult,
)

logger = logging.getLogger(__name__)


class JobHandler(Protocol):
    """Queue-specific part of job processing."""

    queue: QueueName
    in_progress_status: NoteStatus

    def resume(self, payload: JobPayload, note: Note) -> dict[str, Any] | None:
        """Finish a job whose result an earlier attempt already stored.

        Returns:
            The job result, or None when the provider still has to run.
        """
        ...

    def call_provider(self, payload: JobPayload) -> Any:
        """Invoke the external provider. May block; the worker bounds it."""
        ...

    def apply_result(self, payload: JobPayload, result: Any) -> dict[str, Any]:
        """Persist a provider result and advance the note.

        Returns:
            Summary stored as the completed job's result.
        """
        ...


class TranscribeHandler:
    """Stores the transcript and hands the note on to summarization."""

    queue = QueueName.TRANSCRIBE
    in_progress_status = NoteStatus.TRANSCRIBING

    def __init__(
        self,
        notes: NoteRepository,
        provider: TranscriptionProvider,
        *,
        summarize_queue: JobQueue | None = None,
        auto_summarize: bool = True,
    ) -> None:
        self._notes = notes
        self._provider = provider
        self._summarize_queue = summarize_queue
        self._auto_summarize = auto_summarize and summarize_queue is not None

    def resume(self, payload: TranscribePayload, note: Note) -> dict[str, Any] | None:
        # Only a transcribe job moves a note past transcribing
        if note.transcript is None or note.status not in (
            NoteStatus.SUMMARIZING,
            NoteStatus.READY,
        ):
            return None
        summary: dict[str, Any] = {"already_applied": note.status.value}
        if note.status == NoteStatus.SUMMARIZING and self._auto_summarize:
            summary["summarize_job_id"] = self._enqueue_summary(
                payload, note.transcript, note.language
            )
        return summary

    def call_provider(self, payload: TranscribePayload) -> TranscriptionResult:
        return self._provider.process(payload)

    def apply_result(
        self, payload: TranscribePayload, result: TranscriptionResult
    ) -> dict[str, Any]:
        note_id = payload.note_id
        self._notes.set_transcript(note_id, result.text)
        summary: dict[str, Any] = result.to_dict()

        if not self._auto_summarize or not result.text.strip():
            self._notes.update_status(note_id, NoteStatus.READY)
            return summary

        # Must precede enqueue so the summarize worker never gets overtaken
        self._notes.update_status(note_id, NoteStatus.SUMMARIZING)
        summary["summarize_job_id"] = self._enqueue_summary(
            payload, result.text, result.language
        )
        return summary

    def _enqueue_summary(
        self, payload: TranscribePayload, transcript: str, language: str | None
    ) -> str | None:
        queue = self._summarize_queue
        if queue is None:
            return None
        try:
            return queue.enqueue(
                payload.note_id,
                {
                    "transcript": transcript,
                    "language": language or payload.language,
                    "user_id": payload.user_id,
                },
            )
        except DuplicateActiveJob as e:
            logger.info("Summarization already queued for note %s", payload.note_id)
            return e.existing_job_id


class SummarizeHandler:
    """Stores the summary and action items, then marks the note ready."""

    queue = QueueName.SUMMARIZE
    in_progress_status = NoteStatus.SUMMARIZING

    def __init__(self, notes: NoteRepository, provider: SummarizationProvider) -> None:
        self._notes = notes
        self._provider = provider

    def resume(self, payload: SummarizePayload, note: Note) -> dict[str, Any] | None:
        # A ready note may be summarized again on request
        return None

    def call_provider(self, payload: SummarizePayload) -> SummaryResult:
        return self._provider.process(payload)

    def apply_result(
        self, payload: SummarizePayload, result: SummaryResult
    ) -> dict[str, Any]:
        self._notes.set_summary(
            payload.note_id, result.summary_text, result.action_items
        )
        self._notes.update_status(payload.note_id, NoteStatus.READY)
        return result.to_dict()
