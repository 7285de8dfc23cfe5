"""Tests for retention and stale-job recovery."""

from datetime import timedelta

from vno.config.models import RetentionConfig
from vno.db.types import JobState, NoteStatus, QueueName
from vno.jobs.maintenance import recover_stale_jobs, run_maintenance
from vno.jobs.retry import RetryPolicy
from vno.jobs.store import InMemoryJobStore


def _start(queue, notes, media: str = "a.m4a"):
    note = notes.create_note("user-1", media_path=media)
    notes.update_status(note.id, NoteStatus.TRANSCRIBING)
    job_id = queue.enqueue(note.id, {"media_path": media})
    queue.dequeue_next("crashed-worker")
    return note.id, job_id


class TestRecoverStaleJobs:
    """Tests for recover_stale_jobs()."""

    def test_retries_when_attempts_remain(self, make_queue, notes, clock) -> None:
        queue = make_queue(QueueName.TRANSCRIBE)
        note_id, job_id = _start(queue, notes)
        clock.advance(minutes=20)

        result = recover_stale_jobs([queue], notes, timedelta(minutes=15))

        assert result.retried == [job_id]
        assert result.failed == []
        assert queue.get_job(job_id).state == JobState.WAITING
        assert notes.get_note(note_id).status == NoteStatus.TRANSCRIBING

    def test_last_attempt_fails_and_marks_note(self, make_queue, notes, clock) -> None:
        """A crash on the final attempt leaves the note in error, not stuck."""
        queue = make_queue(
            QueueName.TRANSCRIBE,
            retry_policy=RetryPolicy(max_attempts=1, base_delay=0, jitter=0),
        )
        note_id, job_id = _start(queue, notes)
        clock.advance(minutes=20)

        result = recover_stale_jobs([queue], notes, timedelta(minutes=15))

        assert result.failed == [job_id]
        assert queue.get_job(job_id).state == JobState.FAILED
        assert notes.get_note(note_id).status == NoteStatus.ERROR

    def test_fresh_jobs_untouched(self, make_queue, notes, clock) -> None:
        queue = make_queue(QueueName.TRANSCRIBE)
        _, job_id = _start(queue, notes)
        clock.advance(minutes=1)
        result = recover_stale_jobs([queue], notes, timedelta(minutes=15))
        assert result.retried == result.failed == []
        assert queue.get_job(job_id).state == JobState.ACTIVE


class TestRunMaintenance:
    """Tests for run_maintenance()."""

    def test_retention_and_recovery(self, make_queue, notes, clock) -> None:
        store = InMemoryJobStore()
        transcribe = make_queue(QueueName.TRANSCRIBE, store)
        summarize = make_queue(QueueName.SUMMARIZE, store)

        done = summarize.enqueue("n-old", {"transcript": "hi"})
        summarize.dequeue_next("w")
        summarize.mark_completed(done)
        _, stale = _start(transcribe, notes)
        clock.advance(days=2)

        result = run_maintenance(
            [transcribe, summarize],
            notes,
            RetentionConfig(completed_max_age=86_400, stale_job_timeout=900),
        )

        assert result.removed == {"transcribe": 0, "summarize": 1}
        assert result.total_removed == 1
        assert result.retried == [stale]
        assert result.to_dict()["retried"] == [stale]
