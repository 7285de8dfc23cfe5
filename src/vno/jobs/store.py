"""Job persistence interface and the in-memory implementation.

A JobStore holds jobs for every queue plus each queue's paused flag. It
offers only atomic primitives; retry and retention policy live in
JobQueue. Timestamps are passed in as ISO-8601 UTC strings so callers
control the clock.

Conditional writes (``update``, ``requeue``, ``delete``) take the state
the caller last observed and return False when the stored job has since
moved on, so two workers can never both win the same transition.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from vno.db.types import NON_TERMINAL_STATES, Job, JobState, QueueName
from vno.jobs.exceptions import DuplicateActiveJob


# Keys returned by count_by_state. "waiting" counts only jobs available now.
STATE_COUNT_KEYS = ("waiting", "delayed", "active", "completed", "failed")


def empty_counts() -> dict[str, int]:
    """Zeroed counts for every key in STATE_COUNT_KEYS."""
    return {key: 0 for key in STATE_COUNT_KEYS}


class JobStore(Protocol):
    """Durable or in-memory storage for jobs and queue flags."""

    def insert(self, job: Job) -> Job:
        """Store a new waiting job, assigning its ``seq``.

        Raises:
            DuplicateActiveJob: If the note already has a waiting or active
                job in the same queue.
        """
        ...

    def claim_next(self, queue: QueueName, worker_id: str, now: str) -> Job | None:
        """Atomically move the next available waiting job to active.

        Returns None when the queue is paused or nothing is available.
        Order: priority ascending, then seq ascending.
        """
        ...

    def get(self, job_id: str) -> Job | None: ...

    def update(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        """Persist job fields if the stored state is still expected_state.

        When expected_worker is given the stored claim must also still
        belong to that worker.
        """
        ...

    def requeue(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        """Persist job fields as waiting with a fresh seq (tail of the queue).

        Raises:
            DuplicateActiveJob: If another non-terminal job exists for the note.
        """
        ...

    def delete(self, job_id: str, *, expected_state: JobState) -> bool: ...

    def list_jobs(
        self, queue: QueueName, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        """Jobs newest first (by seq)."""
        ...

    def count_by_state(self, queue: QueueName, now: str) -> dict[str, int]: ...

    def delete_terminal(
        self, queue: QueueName, states: Iterable[JobState], finished_before: str
    ) -> int:
        """Delete jobs in the given terminal states finished before a cutoff."""
        ...

    def trim_terminal(self, queue: QueueName, state: JobState, keep: int) -> int:
        """Delete all but the ``keep`` most recently finished jobs in a state."""
        ...

    def find_stale_active(self, started_before: str) -> list[Job]:
        """Active jobs (any queue) started before the cutoff."""
        ...

    def is_paused(self, queue: QueueName) -> bool: ...

    def set_paused(self, queue: QueueName, paused: bool, now: str) -> None: ...

    def close(self) -> None: ...


class InMemoryJobStore:
    """Thread-safe dictionary-backed JobStore for tests and dev mode.

    One lock serializes every operation, which makes claim and insert
    atomic across worker threads.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._paused: dict[QueueName, bool] = {q: False for q in QueueName}
        self._seq = 0
        self._lock = threading.Lock()

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _in_flight(self, queue: QueueName, note_id: str, exclude: str) -> Job | None:
        for job in self._jobs.values():
            if (
                job.id != exclude
                and job.queue == queue
                and job.note_id == note_id
                and job.state in NON_TERMINAL_STATES
            ):
                return job
        return None

    def insert(self, job: Job) -> Job:
        with self._lock:
            existing = self._in_flight(job.queue, job.note_id, job.id)
            if existing is not None:
                raise DuplicateActiveJob(job.queue.value, job.note_id, existing.id)
            stored = replace(job, seq=self._next_seq())
            self._jobs[stored.id] = stored
            return replace(stored)

    def claim_next(self, queue: QueueName, worker_id: str, now: str) -> Job | None:
        with self._lock:
            if self._paused[queue]:
                return None
            candidates = [
                job
                for job in self._jobs.values()
                if job.queue == queue
                and job.state == JobState.WAITING
                and job.available_at <= now
            ]
            if not candidates:
                return None
            job = min(candidates, key=lambda j: (j.priority, j.seq))
            claimed = replace(
                job,
                state=JobState.ACTIVE,
                started_at=now,
                worker_id=worker_id,
            )
            self._jobs[job.id] = claimed
            return replace(claimed)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def _matches(
        self, job_id: str, state: JobState, worker_id: str | None
    ) -> Job | None:
        current = self._jobs.get(job_id)
        if current is None or current.state != state:
            return None
        if worker_id is not None and current.worker_id != worker_id:
            return None
        return current

    def update(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        with self._lock:
            current = self._matches(job.id, expected_state, expected_worker)
            if current is None:
                return False
            self._jobs[job.id] = replace(job, seq=current.seq)
            return True

    def requeue(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        with self._lock:
            if self._matches(job.id, expected_state, expected_worker) is None:
                return False
            existing = self._in_flight(job.queue, job.note_id, job.id)
            if existing is not None:
                raise DuplicateActiveJob(job.queue.value, job.note_id, existing.id)
            self._jobs[job.id] = replace(
                job, state=JobState.WAITING, seq=self._next_seq()
            )
            return True

    def delete(self, job_id: str, *, expected_state: JobState) -> bool:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.state != expected_state:
                return False
            del self._jobs[job_id]
            return True

    def list_jobs(
        self, queue: QueueName, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        with self._lock:
            jobs = [
                replace(job)
                for job in self._jobs.values()
                if job.queue == queue and (state is None or job.state == state)
            ]
        jobs.sort(key=lambda j: j.seq, reverse=True)
        return jobs[:limit]

    def count_by_state(self, queue: QueueName, now: str) -> dict[str, int]:
        counts = empty_counts()
        with self._lock:
            for job in self._jobs.values():
                if job.queue != queue:
                    continue
                if job.state == JobState.WAITING and job.available_at > now:
                    counts["delayed"] += 1
                else:
                    counts[job.state.value] += 1
        return counts

    def delete_terminal(
        self, queue: QueueName, states: Iterable[JobState], finished_before: str
    ) -> int:
        wanted = {s for s in states if s.is_terminal}
        with self._lock:
            doomed = [
                job.id
                for job in self._jobs.values()
                if job.queue == queue
                and job.state in wanted
                and job.finished_at is not None
                and job.finished_at < finished_before
            ]
            for job_id in doomed:
                del self._jobs[job_id]
        return len(doomed)

    def trim_terminal(self, queue: QueueName, state: JobState, keep: int) -> int:
        if not state.is_terminal:
            return 0
        with self._lock:
            finished = sorted(
                (
                    job
                    for job in self._jobs.values()
                    if job.queue == queue and job.state == state
                ),
                key=lambda j: (j.finished_at or "", j.seq),
                reverse=True,
            )
            doomed = finished[keep:]
            for job in doomed:
                del self._jobs[job.id]
        return len(doomed)

    def find_stale_active(self, started_before: str) -> list[Job]:
        with self._lock:
            return [
                replace(job)
                for job in self._jobs.values()
                if job.state == JobState.ACTIVE
                and job.started_at is not None
                and job.started_at < started_before
            ]

    def is_paused(self, queue: QueueName) -> bool:
        with self._lock:
            return self._paused[queue]

    def set_paused(self, queue: QueueName, paused: bool, now: str) -> None:
        with self._lock:
            self._paused[queue] = paused

    def close(self) -> None:
        """Nothing to release."""
