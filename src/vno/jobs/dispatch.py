"""Submit notes for processing.

The dispatcher is the entry point for new work. It checks that a note is
in a state the worker can pick up, then enqueues the matching job. The
queue enforces the one-in-flight-job-per-note rule. Cancelling goes
through the dispatcher too, so a note is never left mid-processing
without a job.
"""

from __future__ import annotations

import logging

from vno.db.types import (
    Job,
    Note,
    NoteStatus,
    QueueName,
    is_valid_note_transition,
)
from vno.jobs.exceptions import QueueValidationError
from vno.jobs.queue import JobQueue
from vno.notes.repository import NoteNotFoundError, NoteRepository

logger = logging.getLogger(__name__)

SUBMITTABLE_STATUSES = frozenset({NoteStatus.UPLOADED, NoteStatus.ERROR})


class JobDispatcher:
    """Enqueues transcribe and summarize jobs for notes."""

    def __init__(
        self,
        notes: NoteRepository,
        transcribe_queue: JobQueue,
        summarize_queue: JobQueue,
        *,
        transcription_model: str | None = None,
        summarization_model: str | None = None,
        default_language: str | None = None,
    ) -> None:
        self.notes = notes
        self.transcribe_queue = transcribe_queue
        self.summarize_queue = summarize_queue
        self.transcription_model = transcription_model
        self.summarization_model = summarization_model
        self.default_language = default_language

    def _get(self, note_id: str) -> Note:
        note = self.notes.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def submit_note(self, note_id: str, *, priority: int | None = None) -> str:
        """Queue transcription for an uploaded (or previously failed) note.

        Returns:
            The new job's ID.

        Raises:
            NoteNotFoundError: If the note doesn't exist.
            QueueValidationError: If the note has no media or is mid-processing.
            DuplicateActiveJob: If a transcribe job is already in flight.
        """
        note = self._get(note_id)
        if note.status not in SUBMITTABLE_STATUSES:
            raise QueueValidationError(
                f"Note {note_id} is {note.status.value}; "
                "only uploaded or error notes can be submitted"
            )
        if not note.media_path:
            raise QueueValidationError(f"Note {note_id} has no media to transcribe")

        job_id = self.transcribe_queue.enqueue(
            note_id,
            {
                "media_path": note.media_path,
                "language": note.language or self.default_language,
                "model": self.transcription_model,
                "user_id": note.owner_id,
            },
            priority=priority,
        )
        logger.info("Submitted note %s for transcription (job %s)", note_id, job_id)
        return job_id

    def submit_summary(self, note_id: str, *, priority: int | None = None) -> str:
        """Queue (re-)summarization of a note's existing transcript.

        Raises:
            NoteNotFoundError: If the note doesn't exist.
            QueueValidationError: If the note has no transcript or cannot
                move to summarizing from its current status.
            DuplicateActiveJob: If a summarize job is already in flight.
        """
        note = self._get(note_id)
        if not (note.transcript and note.transcript.strip()):
            raise QueueValidationError(f"Note {note_id} has no transcript")
        if not is_valid_note_transition(note.status, NoteStatus.SUMMARIZING):
            raise QueueValidationError(
                f"Note {note_id} is {note.status.value} and cannot be summarized"
            )

        job_id = self.summarize_queue.enqueue(
            note_id,
            {
                "transcript": note.transcript,
                "language": note.language or self.default_language,
                "model": self.summarization_model,
                "user_id": note.owner_id,
            },
            priority=priority,
        )
        logger.info("Submitted note %s for summarization (job %s)", note_id, job_id)
        return job_id

    def cancel_job(self, queue_name: QueueName, job_id: str) -> Job:
        """Remove a waiting job and release its note.

        A note left mid-processing by the cancelled job (an attempt already
        ran, or the note sits in the queue's in-progress status) is moved
        to error so it can be submitted again.

        Raises:
            JobNotFoundError: If the job doesn't exist in the queue.
            InvalidJobTransition: If the job is not waiting.
        """
        if queue_name == QueueName.TRANSCRIBE:
            queue, in_progress = self.transcribe_queue, NoteStatus.TRANSCRIBING
        else:
            queue, in_progress = self.summarize_queue, NoteStatus.SUMMARIZING
        job = queue.cancel_job(job_id)

        note = self.notes.get_note(job.note_id)
        if note is None or note.status == NoteStatus.ERROR:
            return job
        if job.attempts > 0 or note.status == in_progress:
            self.notes.update_status(note.id, NoteStatus.ERROR)
            logger.info(
                "Note %s moved to error after its %s job was cancelled",
                note.id,
                queue_name.value,
            )
        return job
