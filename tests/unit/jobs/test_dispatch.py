"""Tests for JobDispatcher."""

import pytest

from vno.db.types import NoteStatus, QueueName
from vno.jobs.dispatch import JobDispatcher
from vno.jobs.exceptions import (
    DuplicateActiveJob,
    InvalidJobTransition,
    QueueValidationError,
)
from vno.jobs.store import InMemoryJobStore
from vno.notes.repository import NoteNotFoundError


@pytest.fixture
def dispatcher(make_queue, notes) -> JobDispatcher:
    store = InMemoryJobStore()
    return JobDispatcher(
        notes,
        make_queue(QueueName.TRANSCRIBE, store),
        make_queue(QueueName.SUMMARIZE, store),
        transcription_model="whisper-1",
        default_language="en",
    )


class TestSubmitNote:
    """Tests for submit_note()."""

    def test_enqueues_transcription(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="/media/a.m4a")
        job_id = dispatcher.submit_note(note.id)
        job = dispatcher.transcribe_queue.get_job(job_id)
        assert job.payload == {
            "note_id": note.id,
            "media_path": "/media/a.m4a",
            "language": "en",
            "model": "whisper-1",
            "user_id": "user-1",
        }

    def test_note_language_wins(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a", language="fr")
        job_id = dispatcher.submit_note(note.id)
        assert dispatcher.transcribe_queue.get_job(job_id).payload["language"] == "fr"

    def test_missing_note(self, dispatcher) -> None:
        with pytest.raises(NoteNotFoundError):
            dispatcher.submit_note("nope")

    def test_requires_media(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1")
        with pytest.raises(QueueValidationError, match="no media"):
            dispatcher.submit_note(note.id)

    def test_rejects_note_in_progress(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        notes.update_status(note.id, NoteStatus.TRANSCRIBING)
        with pytest.raises(QueueValidationError, match="transcribing"):
            dispatcher.submit_note(note.id)

    def test_resubmit_after_error(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        notes.update_status(note.id, NoteStatus.ERROR)
        assert dispatcher.submit_note(note.id)

    def test_duplicate_submission(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        dispatcher.submit_note(note.id)
        with pytest.raises(DuplicateActiveJob):
            dispatcher.submit_note(note.id)


class TestSubmitSummary:
    """Tests for submit_summary()."""

    def _ready_note(self, notes):
        note = notes.create_note("user-1", media_path="a.m4a")
        notes.update_status(note.id, NoteStatus.TRANSCRIBING)
        notes.set_transcript(note.id, "Some words.")
        notes.update_status(note.id, NoteStatus.READY)
        return note

    def test_resummarize_ready_note(self, dispatcher, notes) -> None:
        note = self._ready_note(notes)
        job_id = dispatcher.submit_summary(note.id, priority=1)
        job = dispatcher.summarize_queue.get_job(job_id)
        assert job.payload["transcript"] == "Some words."
        assert job.priority == 1

    def test_requires_transcript(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        with pytest.raises(QueueValidationError, match="no transcript"):
            dispatcher.submit_summary(note.id)

    def test_rejects_disallowed_status(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        notes.set_transcript(note.id, "Some words.")
        with pytest.raises(QueueValidationError, match="cannot be summarized"):
            dispatcher.submit_summary(note.id)


class TestCancelJob:
    """Tests for cancel_job()."""

    def test_untouched_note_keeps_status(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        job_id = dispatcher.submit_note(note.id)
        dispatcher.cancel_job(QueueName.TRANSCRIBE, job_id)
        assert dispatcher.transcribe_queue.get_job(job_id) is None
        assert notes.get_note(note.id).status == NoteStatus.UPLOADED

    def test_retry_pending_releases_note(self, dispatcher, notes) -> None:
        """Cancelling a backed-off retry leaves the note resubmittable."""
        note = notes.create_note("user-1", media_path="a.m4a")
        job_id = dispatcher.submit_note(note.id)
        queue = dispatcher.transcribe_queue
        queue.dequeue_next("w1")
        notes.update_status(note.id, NoteStatus.TRANSCRIBING)
        queue.mark_failed(job_id, "503 Service Unavailable")

        cancelled = dispatcher.cancel_job(QueueName.TRANSCRIBE, job_id)

        assert cancelled.attempts == 1
        assert notes.get_note(note.id).status == NoteStatus.ERROR
        assert dispatcher.submit_note(note.id) != job_id

    def test_queued_summary_releases_note(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        notes.set_transcript(note.id, "Ship it on Friday.")
        notes.update_status(note.id, NoteStatus.TRANSCRIBING)
        notes.update_status(note.id, NoteStatus.SUMMARIZING)
        job_id = dispatcher.summarize_queue.enqueue(
            note.id, {"transcript": "Ship it on Friday."}
        )

        dispatcher.cancel_job(QueueName.SUMMARIZE, job_id)

        assert notes.get_note(note.id).status == NoteStatus.ERROR
        assert dispatcher.submit_summary(note.id)

    def test_active_job_rejected(self, dispatcher, notes) -> None:
        note = notes.create_note("user-1", media_path="a.m4a")
        job_id = dispatcher.submit_note(note.id)
        dispatcher.transcribe_queue.dequeue_next("w1")
        with pytest.raises(InvalidJobTransition):
            dispatcher.cancel_job(QueueName.TRANSCRIBE, job_id)
