"""Process-wide service container.

Everything the server, workers and CLI need is built once by
``build_services`` and passed around explicitly. ``Services.close`` tears
it down again; workers must be stopped first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from vno.config.loader import get_database_path
from vno.config.models import VNOConfig
from vno.db.connection import ConnectionPool
from vno.db.schema import initialize_database
from vno.db.types import QueueName
from vno.jobs.dispatch import JobDispatcher
from vno.jobs.events import CompositeEventSink, EventSink, LoggingEventSink
from vno.jobs.handlers import JobHandler, SummarizeHandler, TranscribeHandler
from vno.jobs.maintenance import MaintenanceResult, run_maintenance
from vno.jobs.queue import JobQueue
from vno.jobs.retry import RetryPolicy
from vno.jobs.sqlite_store import SQLiteJobStore
from vno.jobs.store import InMemoryJobStore, JobStore
from vno.jobs.supervisor import QueueSupervisor
from vno.jobs.worker import Worker, WorkerPool
from vno.notes.repository import (
    InMemoryNoteRepository,
    NoteRepository,
    SQLiteNoteRepository,
)
from vno.providers import create_summarization_provider, create_transcription_provider

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Explicitly constructed collaborators shared by one process."""

    config: VNOConfig
    notes: NoteRepository
    store: JobStore
    queues: dict[QueueName, JobQueue]
    handlers: dict[QueueName, JobHandler]
    supervisor: QueueSupervisor
    dispatcher: JobDispatcher
    events: EventSink
    pool: ConnectionPool | None = None
    providers: list[object] = field(default_factory=list)

    def queue(self, name: QueueName) -> JobQueue:
        return self.queues[name]

    def build_worker_pool(
        self,
        names: list[QueueName] | None = None,
        *,
        concurrency: int | None = None,
    ) -> WorkerPool:
        """Create (but don't start) workers for the given queues.

        Args:
            names: Queues to serve; all queues when None.
            concurrency: Workers per queue, overriding the configured value.
        """
        pool = WorkerPool()
        for name in names or list(QueueName):
            queue_config = self.config.queue(name)
            count = concurrency or queue_config.concurrency
            for index in range(count):
                pool.add(
                    Worker(
                        self.queues[name],
                        self.handlers[name],
                        self.notes,
                        worker_id=f"{name.value}-{index + 1}",
                        poll_interval=self.config.worker.poll_interval,
                        provider_timeout=queue_config.provider_timeout,
                        events=self.events,
                    )
                )
        return pool

    def run_maintenance(self) -> MaintenanceResult:
        """One retention and stale-recovery pass over every queue."""
        return run_maintenance(
            self.queues.values(), self.notes, self.config.retention
        )

    def close(self) -> None:
        """Release provider clients, the store and database connections."""
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                close()
        self.store.close()
        if self.pool is not None and not self.pool.is_closed:
            self.pool.close()
            logger.debug("Closed database connection pool")


def build_services(
    config: VNOConfig,
    *,
    memory: bool = False,
    events: EventSink | None = None,
) -> Services:
    """Wire up repositories, queues, providers and handlers.

    Args:
        config: Loaded configuration.
        memory: Keep notes and jobs in process memory instead of SQLite.
        events: Extra event sink, alongside the logging sink.

    Raises:
        ValueError: If a provider is misconfigured.
    """
    pool: ConnectionPool | None = None
    notes: NoteRepository
    store: JobStore
    if memory:
        notes = InMemoryNoteRepository()
        store = InMemoryJobStore()
        logger.info("Using in-memory note and job storage")
    else:
        db_path = get_database_path(config)
        pool = ConnectionPool(db_path)
        with pool.write_connection() as conn:
            initialize_database(conn)
        notes = SQLiteNoteRepository(pool)
        store = SQLiteJobStore(pool, initialize=False)
        logger.debug("Using database %s", db_path)

    queues = {
        name: JobQueue(
            name,
            store,
            retry_policy=RetryPolicy.from_config(config.queue(name)),
            priority=config.queue(name).priority,
        )
        for name in QueueName
    }

    media_root: Path | None = config.data_dir
    transcription = create_transcription_provider(
        config.providers,
        media_root=media_root,
        timeout=config.queue(QueueName.TRANSCRIBE).provider_timeout,
    )
    summarization = create_summarization_provider(
        config.providers,
        timeout=config.queue(QueueName.SUMMARIZE).provider_timeout,
    )
    handlers: dict[QueueName, JobHandler] = {
        QueueName.TRANSCRIBE: TranscribeHandler(
            notes,
            transcription,
            summarize_queue=queues[QueueName.SUMMARIZE],
            auto_summarize=config.worker.auto_summarize,
        ),
        QueueName.SUMMARIZE: SummarizeHandler(notes, summarization),
    }

    sinks: list[EventSink] = [LoggingEventSink()]
    if events is not None:
        sinks.append(events)
    sink: EventSink = CompositeEventSink(sinks)

    dispatcher = JobDispatcher(
        notes,
        queues[QueueName.TRANSCRIBE],
        queues[QueueName.SUMMARIZE],
        transcription_model=(
            config.providers.transcription_model
            if config.providers.transcription != "mock"
            else None
        ),
        summarization_model=(
            config.providers.summarization_model
            if config.providers.summarization != "mock"
            else None
        ),
        default_language=config.providers.language,
    )

    return Services(
        config=config,
        notes=notes,
        store=store,
        queues=queues,
        handlers=handlers,
        supervisor=QueueSupervisor(queues),
        dispatcher=dispatcher,
        events=sink,
        pool=pool,
        providers=[transcription, summarization],
    )
