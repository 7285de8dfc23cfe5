"""Worker pool that drains job queues.

Each Worker is one thread polling one queue:
- Claim the next job (the queue's store makes claims atomic)
- Move the note to the in-progress status for the queue
- Call the provider with a bounded timeout
- On success store the result, advance the note and complete the job
- On failure classify it; transient errors are retried with backoff,
  terminal ones fail the job and move the note to error

Job-level failures never escape the worker loop.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any

from vno.db.types import Job, JobState, NoteStatus, QueueName
from vno.jobs.events import EventSink, JobEvent, JobEventType, safe_emit
from vno.jobs.exceptions import (
    InvalidJobTransition,
    JobNotFoundError,
    QueueValidationError,
)
from vno.jobs.handlers import JobHandler
from vno.jobs.payloads import parse_payload
from vno.jobs.queue import JobQueue
from vno.logging.context import worker_context
from vno.notes.repository import (
    InvalidStatusTransition,
    NoteNotFoundError,
    NoteRepository,
)
from vno.providers.base import ProviderError, ProviderTransientError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_PROVIDER_TIMEOUT = 120.0


class ErrorClassification(Enum):
    """Whether retrying a failed job might succeed."""

    TRANSIENT = "transient"
    TERMINAL = "terminal"


def classify_job_error(exception: BaseException) -> ErrorClassification:
    """Classify a processing exception for the retry decision.

    Provider errors carry their own classification. Malformed payloads,
    missing notes and disallowed status changes fail the same way on
    every attempt. Anything unexpected is treated as transient and left
    to the attempt limit.
    """
    if isinstance(exception, ProviderError):
        return (
            ErrorClassification.TRANSIENT
            if exception.retryable
            else ErrorClassification.TERMINAL
        )
    if isinstance(
        exception, (QueueValidationError, NoteNotFoundError, InvalidStatusTransition)
    ):
        return ErrorClassification.TERMINAL
    return ErrorClassification.TRANSIENT


class Outcome(Enum):
    """What happened to a processed job."""

    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    ABANDONED = "abandoned"  # job changed state under us (e.g. stale recovery)


@dataclass(frozen=True)
class JobOutcome:
    """Result of processing one job."""

    job_id: str
    note_id: str
    queue: QueueName
    outcome: Outcome
    error: str | None = None


def call_with_timeout(func, arg: Any, timeout: float, *, name: str) -> Any:
    """Run func(arg) in a helper thread, waiting at most timeout seconds.

    Raises:
        ProviderTransientError: If the call does not finish in time. The
            helper thread is left to finish in the background.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
    try:
        future = executor.submit(func, arg)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            raise ProviderTransientError(
                f"Provider call timed out after {timeout:g}s"
            ) from None
    finally:
        executor.shutdown(wait=False)


class Worker:
    """Processes jobs from one queue."""

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        notes: NoteRepository,
        *,
        worker_id: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        events: EventSink | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            queue: Queue to drain.
            handler: Provider call and result storage for the queue.
            notes: Note repository for status changes.
            worker_id: Identifier recorded on claimed jobs and in logs.
            poll_interval: Seconds to wait after finding the queue empty.
            provider_timeout: Upper bound on one provider call (seconds).
            events: Sink for lifecycle events.
            stop_event: Shared event that stops the loop when set.
        """
        if handler.queue != queue.name:
            raise ValueError(
                f"Handler for {handler.queue.value} cannot serve {queue.name.value}"
            )
        self.queue = queue
        self.handler = handler
        self.notes = notes
        self.worker_id = worker_id or f"{queue.name.value}-{uuid.uuid4().hex[:6]}"
        self.poll_interval = poll_interval
        self.provider_timeout = provider_timeout
        self.events = events
        self._stop = stop_event or threading.Event()
        self.jobs_processed = 0

    def stop(self) -> None:
        """Ask the loop to exit after the current job."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        """Poll until stopped. Never raises for job-level failures."""
        logger.info("Worker %s started", self.worker_id)
        while not self._stop.is_set():
            try:
                outcome = self.run_once()
            except Exception:
                # Store trouble (e.g. database unavailable); back off and retry
                logger.exception("Worker %s poll failed", self.worker_id)
                outcome = None
            if outcome is None:
                self._stop.wait(self.poll_interval)
        logger.info(
            "Worker %s stopped after %d job(s)", self.worker_id, self.jobs_processed
        )

    def run_once(self) -> JobOutcome | None:
        """Claim and process one job. Returns None if nothing was available."""
        job = self.queue.dequeue_next(self.worker_id)
        if job is None:
            return None
        return self.process(job)

    def _emit(
        self,
        event_type: JobEventType,
        job: Job,
        correlation_id: str,
        **detail: Any,
    ) -> None:
        safe_emit(
            self.events,
            JobEvent(
                type=event_type,
                queue=job.queue,
                job_id=job.id,
                note_id=job.note_id,
                correlation_id=correlation_id,
                detail=detail,
            ),
        )

    def process(self, job: Job) -> JobOutcome:
        """Process a claimed (active) job to completion, retry or failure."""
        correlation_id = uuid.uuid4().hex
        with worker_context(self.worker_id, job.id, job.note_id):
            try:
                outcome = self._execute(job, correlation_id)
            except Exception as e:
                outcome = self._handle_failure(job, e, correlation_id)
            self.jobs_processed += 1
            return outcome

    def _execute(self, job: Job, correlation_id: str) -> JobOutcome:
        payload = parse_payload(job.queue, job.note_id, job.payload)
        note = self.notes.get_note(job.note_id)
        if note is None:
            raise NoteNotFoundError(job.note_id)
        resumed = self.handler.resume(payload, note)
        if resumed is not None:
            # An earlier attempt stored the result but lost its completion
            logger.info(
                "Note already %s; completing %s job without a provider call",
                note.status.value,
                job.queue.value,
            )
            return self._complete(job, resumed, correlation_id)
        self.notes.update_status(job.note_id, self.handler.in_progress_status)

        logger.info(
            "Processing %s job (attempt %d/%d)",
            job.queue.value,
            job.attempts + 1,
            job.max_attempts,
        )
        self._emit(
            JobEventType.for_queue(job.queue, "started"),
            job,
            correlation_id,
            attempt=job.attempts + 1,
        )

        result = call_with_timeout(
            self.handler.call_provider,
            payload,
            self.provider_timeout,
            name=f"{self.worker_id}-provider",
        )
        if not self.queue.holds_claim(job.id, self.worker_id):
            logger.warning("Claim on job lost during the provider call; result dropped")
            return JobOutcome(
                job.id, job.note_id, job.queue, Outcome.ABANDONED, "claim lost"
            )
        job_result = self.handler.apply_result(payload, result)
        return self._complete(job, job_result, correlation_id)

    def _complete(
        self, job: Job, job_result: dict[str, Any], correlation_id: str
    ) -> JobOutcome:
        try:
            self.queue.mark_completed(job.id, job_result, worker_id=self.worker_id)
        except (InvalidJobTransition, JobNotFoundError) as e:
            logger.warning("Finished job could not be marked completed: %s", e)
            return JobOutcome(
                job.id, job.note_id, job.queue, Outcome.ABANDONED, str(e)
            )

        self._emit(
            JobEventType.for_queue(job.queue, "completed"),
            job,
            correlation_id,
            result=job_result,
        )
        return JobOutcome(job.id, job.note_id, job.queue, Outcome.COMPLETED)

    def _handle_failure(
        self, job: Job, error: Exception, correlation_id: str
    ) -> JobOutcome:
        classification = classify_job_error(error)
        reason = f"{type(error).__name__}: {error}"
        if classification == ErrorClassification.TRANSIENT and not isinstance(
            error, ProviderError
        ):
            logger.exception("Unexpected error processing job")
        else:
            logger.warning("Job attempt failed (%s): %s", classification.value, reason)

        try:
            updated = self.queue.mark_failed(
                job.id,
                reason,
                retryable=classification == ErrorClassification.TRANSIENT,
                worker_id=self.worker_id,
            )
        except (InvalidJobTransition, JobNotFoundError) as e:
            logger.warning("Failed job could not be recorded: %s", e)
            return JobOutcome(
                job.id, job.note_id, job.queue, Outcome.ABANDONED, reason
            )

        if updated.state == JobState.WAITING:
            self._emit(
                JobEventType.JOB_RETRY_SCHEDULED,
                updated,
                correlation_id,
                attempts=updated.attempts,
                available_at=updated.available_at,
                error=reason,
            )
            return JobOutcome(
                job.id, job.note_id, job.queue, Outcome.RETRY_SCHEDULED, reason
            )

        self._mark_note_error(job.note_id)
        self._emit(
            JobEventType.for_queue(job.queue, "failed"),
            updated,
            correlation_id,
            attempts=updated.attempts,
            error=reason,
        )
        return JobOutcome(job.id, job.note_id, job.queue, Outcome.FAILED, reason)

    def _mark_note_error(self, note_id: str) -> None:
        try:
            self.notes.update_status(note_id, NoteStatus.ERROR)
        except NoteNotFoundError:
            logger.warning("Note %s vanished before it could be marked error", note_id)


class WorkerPool:
    """A set of worker threads sharing one stop event."""

    def __init__(self, workers: Iterable[Worker] = ()) -> None:
        self._stop = threading.Event()
        self.workers: list[Worker] = []
        self._threads: list[threading.Thread] = []
        for worker in workers:
            self.add(worker)

    def add(self, worker: Worker) -> None:
        """Attach a worker; it will share the pool's stop event."""
        worker._stop = self._stop
        self.workers.append(worker)

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start one daemon thread per worker."""
        if self.is_running:
            raise RuntimeError("Worker pool is already running")
        self._stop.clear()
        self._threads = [
            threading.Thread(target=w.run, name=w.worker_id, daemon=True)
            for w in self.workers
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Started %d worker(s)", len(self._threads))

    def stop(self, timeout: float = 30.0) -> bool:
        """Signal all workers and wait for in-flight jobs.

        Returns:
            True if every worker exited within the timeout.
        """
        self._stop.set()
        remaining = timeout
        for thread in self._threads:
            thread.join(timeout=max(0.0, remaining))
            remaining = 0.0 if thread.is_alive() else remaining
        stuck = [t.name for t in self._threads if t.is_alive()]
        if stuck:
            logger.warning("Workers still busy after %.0fs: %s", timeout, stuck)
            return False
        logger.info("All workers stopped")
        return True

    def request_stop(self) -> None:
        """Signal workers to stop without waiting. Safe in signal handlers."""
        self._stop.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stop() is called or the timeout expires."""
        return self._stop.wait(timeout)

    def _one_per_queue(self) -> list[Worker]:
        seen: set[QueueName] = set()
        workers = []
        for worker in self.workers:
            if worker.queue.name not in seen:
                seen.add(worker.queue.name)
                workers.append(worker)
        return workers

    def run_once(self) -> list[JobOutcome]:
        """Let each distinct queue process at most one job, synchronously."""
        outcomes = []
        for worker in self._one_per_queue():
            outcome = worker.run_once()
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def drain(self, max_jobs: int | None = None) -> list[JobOutcome]:
        """Process available jobs synchronously until every queue is idle.

        Retries scheduled in the future are not waited for.
        """
        outcomes: list[JobOutcome] = []
        workers = self._one_per_queue()
        while True:
            progressed = False
            for worker in workers:
                if max_jobs is not None and len(outcomes) >= max_jobs:
                    return outcomes
                outcome = worker.run_once()
                if outcome is not None:
                    outcomes.append(outcome)
                    progressed = True
            if not progressed:
                return outcomes
