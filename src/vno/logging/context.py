"""Job and request context for structured logging.

Context variables carry the worker, job and note being processed, plus
the correlation id of an admin request. WorkerContextFilter copies them
onto every log record.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_worker_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker_id", default=None
)
_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_note_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "note_id", default=None
)
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_worker_context(
    worker_id: str,
    job_id: str | None = None,
    note_id: str | None = None,
) -> None:
    """Set the current worker context.

    Args:
        worker_id: Worker identifier (e.g., "transcribe-1").
        job_id: Job being processed, or None while idle.
        note_id: Note the job belongs to, or None while idle.
    """
    _worker_id.set(worker_id)
    _job_id.set(job_id)
    _note_id.set(note_id)


def clear_worker_context() -> None:
    """Clear the current worker context."""
    _worker_id.set(None)
    _job_id.set(None)
    _note_id.set(None)


@contextmanager
def worker_context(
    worker_id: str,
    job_id: str | None = None,
    note_id: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for job processing context.

    Sets worker context on entry and restores the previous one on exit.

    Example:
        with worker_context("transcribe-1", job.id, job.note_id):
            logger.info("Processing job")  # Automatically includes context
    """
    previous = get_worker_context()
    try:
        set_worker_context(worker_id, job_id, note_id)
        yield
    finally:
        _worker_id.set(previous[0])
        _job_id.set(previous[1])
        _note_id.set(previous[2])


def get_worker_context() -> tuple[str | None, str | None, str | None]:
    """Get current worker context as (worker_id, job_id, note_id)."""
    return _worker_id.get(), _job_id.get(), _note_id.get()


def get_correlation_id() -> str | None:
    """Return the correlation id of the request being handled, if any."""
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str) -> Generator[None, None, None]:
    """Bind a correlation id for the duration of a request."""
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class WorkerContextFilter(logging.Filter):
    """Logging filter that injects job context into log records.

    Adds worker_id, job_id, note_id and correlation_id attributes. For the
    text format it also adds a compact worker_tag such as
    ``[transcribe-1:1a2b3c4d] `` (job id shortened to 8 characters).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Enrich the record. Never filters anything out."""
        worker_id, job_id, note_id = get_worker_context()
        correlation_id = _correlation_id.get()

        record.worker_id = worker_id
        record.job_id = job_id
        record.note_id = note_id
        record.correlation_id = correlation_id

        if worker_id:
            if job_id:
                record.worker_tag = f"[{worker_id}:{job_id[:8]}] "
            else:
                record.worker_tag = f"[{worker_id}] "
        elif correlation_id:
            record.worker_tag = f"[req:{correlation_id[:8]}] "
        else:
            record.worker_tag = ""

        return True
