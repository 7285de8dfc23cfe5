"""Queue supervisor: the operational facade over the job queues.

The supervisor is what admin tooling (HTTP API and CLI) talks to. It
resolves queue names, runs the requested queue operation, and stamps
every result with the time it was produced. It holds no state besides
references to the queues.

Error contract:
- Unknown queue names raise QueueValidationError (safe to show callers)
- Any other failure is logged with a correlation id and raised as
  SupervisorError with a generic message
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, TypeVar

from vno.core.datetime_utils import utcnow_iso
from vno.db.types import QueueName, QueueStats
from vno.jobs.exceptions import QueueValidationError, SupervisorError
from vno.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

DEFAULT_CLEAN_AGE = timedelta(hours=24)

T = TypeVar("T")


@dataclass(frozen=True)
class AllQueueStats:
    """Stats for every queue."""

    stats: dict[str, QueueStats]
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        body: dict[str, Any] = {
            name: stats.to_dict() for name, stats in self.stats.items()
        }
        body["timestamp"] = self.timestamp
        return body


@dataclass(frozen=True)
class QueueStatsResult:
    """Stats for one queue."""

    queue: str
    stats: QueueStats
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "queue": self.queue,
            "stats": self.stats.to_dict(),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a pause, resume or clean request."""

    message: str
    timestamp: str
    removed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        body: dict[str, Any] = {"message": self.message, "timestamp": self.timestamp}
        if self.removed is not None:
            body["removed"] = self.removed
        return body


class QueueSupervisor:
    """Named-queue operations for operators."""

    def __init__(self, queues: Mapping[QueueName, JobQueue]) -> None:
        self._queues = dict(queues)

    @property
    def queue_names(self) -> list[str]:
        return [name.value for name in QueueName if name in self._queues]

    def _resolve(self, name: str) -> JobQueue:
        try:
            queue_name = QueueName.parse(name)
        except ValueError as e:
            raise QueueValidationError(str(e)) from None
        queue = self._queues.get(queue_name)
        if queue is None:
            raise QueueValidationError(f"Queue {name} is not configured")
        return queue

    def _guard(self, operation: str, func: Callable[[], T]) -> T:
        """Run func, turning unexpected failures into SupervisorError."""
        try:
            return func()
        except QueueValidationError:
            raise
        except Exception as e:
            correlation_id = uuid.uuid4().hex
            logger.exception(
                "Queue operation %s failed [correlation_id=%s]",
                operation,
                correlation_id,
            )
            raise SupervisorError(
                f"Failed to {operation}", correlation_id=correlation_id
            ) from e

    def get_all_stats(self) -> AllQueueStats:
        """Snapshot stats for every queue."""

        def _collect() -> AllQueueStats:
            stats = {
                name.value: queue.stats() for name, queue in self._queues.items()
            }
            return AllQueueStats(stats=stats, timestamp=utcnow_iso())

        return self._guard("get queue statistics", _collect)

    def get_stats(self, name: str) -> QueueStatsResult:
        """Snapshot stats for one queue."""
        queue = self._resolve(name)
        stats = self._guard(f"get {queue.name.value} queue statistics", queue.stats)
        return QueueStatsResult(
            queue=queue.name.value, stats=stats, timestamp=utcnow_iso()
        )

    def pause(self, name: str) -> ActionResult:
        """Stop workers from claiming jobs in a queue. Idempotent."""
        queue = self._resolve(name)
        self._guard(f"pause {queue.name.value} queue", queue.pause)
        return ActionResult(
            message=f"Queue {queue.name.value} paused", timestamp=utcnow_iso()
        )

    def resume(self, name: str) -> ActionResult:
        """Let workers claim jobs in a queue again. Idempotent."""
        queue = self._resolve(name)
        self._guard(f"resume {queue.name.value} queue", queue.resume)
        return ActionResult(
            message=f"Queue {queue.name.value} resumed", timestamp=utcnow_iso()
        )

    def clean(
        self, name: str, older_than: timedelta = DEFAULT_CLEAN_AGE
    ) -> ActionResult:
        """Remove completed and failed jobs finished before the cutoff."""
        queue = self._resolve(name)
        removed = self._guard(
            f"clean {queue.name.value} queue",
            lambda: queue.clean_old_jobs(older_than),
        )
        return ActionResult(
            message=f"Queue {queue.name.value} cleaned",
            timestamp=utcnow_iso(),
            removed=removed,
        )
