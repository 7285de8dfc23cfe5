"""Job queue for one kind of work (transcribe or summarize).

JobQueue applies queue policy on top of a JobStore:
- Enqueue validates the payload and rejects a second in-flight job per note
- Dequeue returns the oldest available job by priority, or None when paused
- Failures are retried with exponential backoff at the tail of the queue
  until max_attempts, then the job is terminal-failed
- Retention trims finished jobs by age and count; waiting and active jobs
  are never removed
"""

from __future__ import annotations

import logging
import os
import socket
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from vno.config.models import RetentionConfig
from vno.core.datetime_utils import to_iso, utcnow
from vno.db.types import (
    TERMINAL_STATES,
    Job,
    JobState,
    QueueName,
    QueueStats,
)
from vno.jobs.exceptions import (
    InvalidJobTransition,
    JobClaimLost,
    JobNotFoundError,
    QueueValidationError,
)
from vno.jobs.payloads import parse_payload
from vno.jobs.retry import RetryPolicy
from vno.jobs.store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_PRIORITIES = {QueueName.TRANSCRIBE: 10, QueueName.SUMMARIZE: 5}

# Error recorded on jobs recovered from a dead worker
WORKER_LOST_REASON = "worker lost"


def default_worker_id() -> str:
    """Identifier for claims made outside a named worker."""
    return f"{socket.gethostname()}:{os.getpid()}"


class JobQueue:
    """Durable FIFO-per-priority queue of jobs for one work kind."""

    def __init__(
        self,
        name: QueueName,
        store: JobStore,
        *,
        retry_policy: RetryPolicy | None = None,
        priority: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Create a queue view over a store.

        Args:
            name: Queue this instance serves.
            store: Shared job store.
            retry_policy: Attempt limit and backoff curve.
            priority: Default priority for new jobs (lower runs first).
            clock: Source of the current time, injectable for tests.
        """
        self.name = name
        self._store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.priority = priority if priority is not None else DEFAULT_PRIORITIES[name]
        self._clock = clock

    def __repr__(self) -> str:
        return f"JobQueue({self.name.value!r})"

    def _now(self) -> str:
        return to_iso(self._clock())

    def _require(self, job_id: str, operation: str) -> Job:
        job = self._store.get(job_id)
        if job is None or job.queue != self.name:
            raise JobNotFoundError(job_id, operation)
        return job

    # Core operations

    def enqueue(
        self,
        note_id: str,
        payload: dict[str, Any],
        *,
        priority: int | None = None,
    ) -> str:
        """Add a job for a note and return its id.

        Enqueueing is allowed while the queue is paused.

        Raises:
            QueueValidationError: If the payload is malformed.
            DuplicateActiveJob: If the note already has a waiting or active
                job in this queue.
        """
        if not note_id:
            raise QueueValidationError("Invalid payload: note_id is required")
        validated = parse_payload(self.name, note_id, payload)
        now = self._now()
        job = Job(
            id=str(uuid.uuid4()),
            queue=self.name,
            note_id=note_id,
            payload=validated.model_dump(exclude_none=True),
            state=JobState.WAITING,
            priority=priority if priority is not None else self.priority,
            attempts=0,
            max_attempts=self.retry_policy.max_attempts,
            seq=0,
            available_at=now,
            created_at=now,
        )
        stored = self._store.insert(job)
        logger.info(
            "Enqueued %s job %s for note %s (priority %d)",
            self.name.value,
            stored.id,
            note_id,
            stored.priority,
        )
        return stored.id

    def dequeue_next(self, worker_id: str | None = None) -> Job | None:
        """Claim the next available job, or None if paused or empty."""
        job = self._store.claim_next(
            self.name, worker_id or default_worker_id(), self._now()
        )
        if job is not None:
            logger.debug(
                "Claimed %s job %s (attempt %d/%d)",
                self.name.value,
                job.id,
                job.attempts + 1,
                job.max_attempts,
            )
        return job

    def mark_completed(
        self,
        job_id: str,
        result: dict[str, Any] | None = None,
        *,
        worker_id: str | None = None,
    ) -> Job:
        """Mark an active job completed.

        Args:
            job_id: Job to complete.
            result: Summary stored on the job.
            worker_id: When given, the claim must still belong to this worker.

        Raises:
            JobNotFoundError: If the job doesn't exist in this queue.
            InvalidJobTransition: If the job is not active.
            JobClaimLost: If another worker holds the claim now.
        """
        job = self._require_active(job_id, "complete", worker_id)
        done = replace(
            job,
            state=JobState.COMPLETED,
            finished_at=self._now(),
            last_error=None,
            result=result,
        )
        if not self._store.update(
            done, expected_state=JobState.ACTIVE, expected_worker=worker_id
        ):
            raise self._rejected(job_id, "complete", worker_id)
        logger.info("Completed %s job %s", self.name.value, job_id)
        return done

    def mark_failed(
        self,
        job_id: str,
        reason: str,
        *,
        retryable: bool = True,
        worker_id: str | None = None,
    ) -> Job:
        """Record a failed attempt for an active job.

        The attempt counter is incremented. A retryable failure with attempts
        remaining goes back to waiting at the tail of the queue after a
        backoff delay; otherwise the job becomes terminal-failed.

        Returns:
            The updated job. ``job.state`` tells the caller which way it went.

        Raises:
            JobNotFoundError: If the job doesn't exist in this queue.
            InvalidJobTransition: If the job is not active.
            JobClaimLost: If worker_id is given and another worker holds
                the claim now.
        """
        job = self._require_active(job_id, "fail", worker_id)
        attempts = min(job.attempts + 1, job.max_attempts)
        now = self._clock()

        if retryable and self.retry_policy.should_retry(attempts, job.max_attempts):
            delay = self.retry_policy.delay_for(attempts)
            retry = replace(
                job,
                attempts=attempts,
                last_error=reason,
                available_at=to_iso(now + timedelta(seconds=delay)),
                started_at=None,
                worker_id=None,
            )
            if not self._store.requeue(
                retry, expected_state=JobState.ACTIVE, expected_worker=worker_id
            ):
                raise self._rejected(job_id, "fail", worker_id)
            logger.warning(
                "%s job %s failed (attempt %d/%d), retrying in %.1fs: %s",
                self.name.value,
                job_id,
                attempts,
                job.max_attempts,
                delay,
                reason,
            )
            return self._store.get(job_id) or retry

        failed = replace(
            job,
            state=JobState.FAILED,
            attempts=attempts,
            last_error=reason,
            finished_at=to_iso(now),
        )
        if not self._store.update(
            failed, expected_state=JobState.ACTIVE, expected_worker=worker_id
        ):
            raise self._rejected(job_id, "fail", worker_id)
        logger.error(
            "%s job %s failed permanently after %d attempt(s): %s",
            self.name.value,
            job_id,
            attempts,
            reason,
        )
        return failed

    def holds_claim(self, job_id: str, worker_id: str) -> bool:
        """Return True if the job is active and claimed by worker_id."""
        job = self.get_job(job_id)
        return (
            job is not None
            and job.state == JobState.ACTIVE
            and job.worker_id == worker_id
        )

    def _require_active(
        self, job_id: str, operation: str, worker_id: str | None
    ) -> Job:
        job = self._require(job_id, operation)
        if job.state != JobState.ACTIVE:
            raise InvalidJobTransition(job_id, job.state.value, operation)
        if worker_id is not None and job.worker_id != worker_id:
            raise JobClaimLost(job_id, operation, worker_id, job.worker_id)
        return job

    def _current_state(self, job_id: str) -> str:
        job = self._store.get(job_id)
        return job.state.value if job is not None else "deleted"

    def _rejected(
        self, job_id: str, operation: str, worker_id: str | None
    ) -> InvalidJobTransition:
        """Describe why a conditional write lost its race."""
        job = self._store.get(job_id)
        if job is not None and job.state == JobState.ACTIVE and worker_id:
            return JobClaimLost(job_id, operation, worker_id, job.worker_id)
        return InvalidJobTransition(job_id, self._current_state(job_id), operation)

    def pause(self) -> None:
        """Stop dequeuing. Idempotent; enqueue and in-flight jobs continue."""
        self._store.set_paused(self.name, True, self._now())
        logger.info("Paused %s queue", self.name.value)

    def resume(self) -> None:
        """Restore dequeuing. Idempotent; waiting jobs keep their order."""
        self._store.set_paused(self.name, False, self._now())
        logger.info("Resumed %s queue", self.name.value)

    def is_paused(self) -> bool:
        """Return True if dequeuing is stopped."""
        return self._store.is_paused(self.name)

    def clean_old_jobs(
        self,
        older_than: timedelta,
        states: Iterable[JobState] = (JobState.COMPLETED, JobState.FAILED),
    ) -> int:
        """Remove completed/failed jobs finished more than older_than ago.

        Raises:
            QueueValidationError: If states includes waiting or active, or
                older_than is negative.
        """
        states = tuple(states)
        bad = [s.value for s in states if s not in TERMINAL_STATES]
        if bad:
            raise QueueValidationError(
                f"Only completed or failed jobs can be cleaned, got {', '.join(bad)}"
            )
        if older_than < timedelta(0):
            raise QueueValidationError("older_than must not be negative")
        cutoff = to_iso(self._clock() - older_than)
        removed = self._store.delete_terminal(self.name, states, cutoff)
        if removed:
            logger.info(
                "Cleaned %d finished %s job(s) older than %s",
                removed,
                self.name.value,
                older_than,
            )
        return removed

    def stats(self) -> QueueStats:
        """Point-in-time counts for this queue."""
        counts = self._store.count_by_state(self.name, self._now())
        return QueueStats(
            waiting=counts["waiting"],
            active=counts["active"],
            completed=counts["completed"],
            failed=counts["failed"],
            delayed=counts["delayed"],
            paused=self._store.is_paused(self.name),
        )

    # Operator extras

    def get_job(self, job_id: str) -> Job | None:
        """Return a job of this queue, or None."""
        job = self._store.get(job_id)
        return job if job is not None and job.queue == self.name else None

    def list_jobs(self, state: JobState | None = None, limit: int = 100) -> list[Job]:
        """List jobs newest first, optionally filtered by state."""
        return self._store.list_jobs(self.name, state, limit)

    def cancel_job(self, job_id: str) -> Job:
        """Remove a waiting job.

        Raises:
            JobNotFoundError: If the job doesn't exist in this queue.
            InvalidJobTransition: If the job is not waiting.
        """
        job = self._require(job_id, "cancel")
        if job.state != JobState.WAITING:
            raise InvalidJobTransition(job_id, job.state.value, "cancel")
        if not self._store.delete(job_id, expected_state=JobState.WAITING):
            raise InvalidJobTransition(job_id, self._current_state(job_id), "cancel")
        logger.info("Cancelled %s job %s", self.name.value, job_id)
        return job

    def retry_job(self, job_id: str) -> Job:
        """Put a terminal-failed job back in the queue with attempts reset.

        Raises:
            JobNotFoundError: If the job doesn't exist in this queue.
            InvalidJobTransition: If the job is not failed.
            DuplicateActiveJob: If the note has another job in flight.
        """
        job = self._require(job_id, "retry")
        if job.state != JobState.FAILED:
            raise InvalidJobTransition(job_id, job.state.value, "retry")
        now = self._now()
        retry = replace(
            job,
            attempts=0,
            max_attempts=self.retry_policy.max_attempts,
            available_at=now,
            started_at=None,
            finished_at=None,
            worker_id=None,
        )
        if not self._store.requeue(retry, expected_state=JobState.FAILED):
            raise InvalidJobTransition(job_id, self._current_state(job_id), "retry")
        logger.info("Re-queued failed %s job %s", self.name.value, job_id)
        return self._store.get(job_id) or retry

    def apply_retention(self, policy: RetentionConfig) -> int:
        """Trim finished jobs by age, then by count. Returns jobs removed."""
        now = self._clock()
        removed = self._store.delete_terminal(
            self.name,
            (JobState.COMPLETED,),
            to_iso(now - timedelta(seconds=policy.completed_max_age)),
        )
        removed += self._store.delete_terminal(
            self.name,
            (JobState.FAILED,),
            to_iso(now - timedelta(seconds=policy.failed_max_age)),
        )
        removed += self._store.trim_terminal(
            self.name, JobState.COMPLETED, policy.keep_completed
        )
        removed += self._store.trim_terminal(
            self.name, JobState.FAILED, policy.keep_failed
        )
        if removed:
            logger.info(
                "Retention removed %d finished %s job(s)", removed, self.name.value
            )
        return removed

    def recover_stale_jobs(self, timeout: timedelta) -> list[Job]:
        """Fail active jobs whose worker stopped responding.

        Each stale job counts as a retryable failure, so it is retried
        while attempts remain and terminal-failed otherwise.

        Returns:
            The recovered jobs in their new state.
        """
        cutoff = to_iso(self._clock() - timeout)
        recovered: list[Job] = []
        for job in self._store.find_stale_active(cutoff):
            if job.queue != self.name:
                continue
            try:
                recovered.append(
                    self.mark_failed(
                        job.id,
                        WORKER_LOST_REASON,
                        retryable=True,
                        worker_id=job.worker_id,
                    )
                )
            except (InvalidJobTransition, JobNotFoundError):
                # Finished, removed or re-claimed since the scan
                continue
            logger.warning(
                "Recovered stale %s job %s (worker %s, started %s)",
                self.name.value,
                job.id,
                job.worker_id,
                job.started_at,
            )
        return recovered
