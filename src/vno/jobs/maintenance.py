"""Periodic queue maintenance (retention and stale-job recovery).

Run from the server's background task and from ``vno queues recover``.
Stale recovery is what repairs a note left mid-processing by a crashed
worker: the job is retried if attempts remain, otherwise it is failed
and the note moves to error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from vno.config.models import RetentionConfig
from vno.db.types import JobState, NoteStatus
from vno.jobs.queue import JobQueue
from vno.notes.repository import NoteNotFoundError, NoteRepository

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceResult:
    """What one maintenance pass did."""

    removed: dict[str, int] = field(default_factory=dict)
    retried: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "removed": dict(self.removed),
            "retried": list(self.retried),
            "failed": list(self.failed),
        }


def recover_stale_jobs(
    queues: Iterable[JobQueue],
    notes: NoteRepository,
    timeout: timedelta,
    result: MaintenanceResult | None = None,
) -> MaintenanceResult:
    """Recover active jobs older than timeout and fix up their notes."""
    result = result or MaintenanceResult()
    for queue in queues:
        for job in queue.recover_stale_jobs(timeout):
            if job.state == JobState.WAITING:
                result.retried.append(job.id)
                continue
            result.failed.append(job.id)
            try:
                notes.update_status(job.note_id, NoteStatus.ERROR)
            except NoteNotFoundError:
                logger.warning(
                    "Stale job %s references missing note %s", job.id, job.note_id
                )
    return result


def run_maintenance(
    queues: Iterable[JobQueue],
    notes: NoteRepository,
    retention: RetentionConfig,
) -> MaintenanceResult:
    """Apply retention to every queue, then recover stale jobs."""
    queues = list(queues)
    result = MaintenanceResult()
    for queue in queues:
        result.removed[queue.name.value] = queue.apply_retention(retention)

    recover_stale_jobs(
        queues,
        notes,
        timedelta(seconds=retention.stale_job_timeout),
        result,
    )

    if result.total_removed or result.retried or result.failed:
        logger.info(
            "Maintenance removed %d job(s), retried %d stale, failed %d stale",
            result.total_removed,
            len(result.retried),
            len(result.failed),
        )
    return result
