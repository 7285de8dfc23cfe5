"""Job system for background transcription and summarization.

- exceptions: Queue-level exception types
- payloads: Validated job payloads per queue
- retry: Attempt limit and backoff policy
- store / sqlite_store: Job persistence (in-memory and SQLite)
- queue: JobQueue, queue policy over a store
- events: Job lifecycle events and sinks
- handlers: Per-queue provider call and result storage
- worker: Worker threads and the worker pool
- dispatch: Submitting notes for processing
- supervisor: Operational facade (stats, pause, resume, clean)
- maintenance: Retention and stale-job recovery

Provider types are imported from vno.providers.base only; vno.providers
imports vno.jobs.payloads.
"""

from vno.jobs.dispatch import JobDispatcher
from vno.jobs.events import (
    CompositeEventSink,
    EventSink,
    JobEvent,
    JobEventType,
    LoggingEventSink,
    MemoryEventSink,
)
from vno.jobs.exceptions import (
    DuplicateActiveJob,
    InvalidJobTransition,
    JobClaimLost,
    JobNotFoundError,
    JobQueueError,
    QueueValidationError,
    SupervisorError,
)
from vno.jobs.handlers import JobHandler, SummarizeHandler, TranscribeHandler
from vno.jobs.maintenance import MaintenanceResult, run_maintenance
from vno.jobs.payloads import SummarizePayload, TranscribePayload, parse_payload
from vno.jobs.queue import JobQueue
from vno.jobs.retry import RetryPolicy
from vno.jobs.sqlite_store import SQLiteJobStore
from vno.jobs.store import InMemoryJobStore, JobStore
from vno.jobs.supervisor import QueueSupervisor
from vno.jobs.worker import (
    ErrorClassification,
    JobOutcome,
    Outcome,
    Worker,
    WorkerPool,
    classify_job_error,
)

__all__ = [
    # Exceptions
    "DuplicateActiveJob",
    "InvalidJobTransition",
    "JobClaimLost",
    "JobNotFoundError",
    "JobQueueError",
    "QueueValidationError",
    "SupervisorError",
    # Payloads and policy
    "RetryPolicy",
    "SummarizePayload",
    "TranscribePayload",
    "parse_payload",
    # Storage and queue
    "InMemoryJobStore",
    "JobQueue",
    "JobStore",
    "SQLiteJobStore",
    # Events
    "CompositeEventSink",
    "EventSink",
    "JobEvent",
    "JobEventType",
    "LoggingEventSink",
    "MemoryEventSink",
    # Processing
    "ErrorClassification",
    "JobDispatcher",
    "JobHandler",
    "JobOutcome",
    "Outcome",
    "SummarizeHandler",
    "TranscribeHandler",
    "Worker",
    "WorkerPool",
    "classify_job_error",
    # Operations
    "MaintenanceResult",
    "QueueSupervisor",
    "run_maintenance",
]
