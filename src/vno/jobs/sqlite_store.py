"""SQLite-backed JobStore.

Jobs live in the ``jobs`` table and the paused flag in ``queues``, so
every process sharing the database file sees the same queue state.
Claims run inside ``BEGIN IMMEDIATE`` so two workers, in this process or
another, never claim the same job. The partial unique index on
``(queue, note_id)`` for waiting/active rows backs the one-in-flight-job
rule even if two processes race on insert.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from typing import Any

from vno.db.connection import ConnectionPool, execute_with_retry
from vno.db.schema import initialize_database
from vno.db.types import Job, JobState, QueueName
from vno.jobs.exceptions import DuplicateActiveJob
from vno.jobs.store import empty_counts

logger = logging.getLogger(__name__)

_UPDATE_COLUMNS = (
    "state",
    "priority",
    "attempts",
    "max_attempts",
    "available_at",
    "started_at",
    "finished_at",
    "worker_id",
    "last_error",
    "result_json",
)


def _row_to_job(row: sqlite3.Row) -> Job:
    result_json = row["result_json"]
    return Job(
        id=row["id"],
        queue=QueueName(row["queue"]),
        note_id=row["note_id"],
        payload=json.loads(row["payload_json"]),
        state=JobState(row["state"]),
        priority=row["priority"],
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        seq=row["seq"],
        available_at=row["available_at"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        worker_id=row["worker_id"],
        last_error=row["last_error"],
        result=json.loads(result_json) if result_json else None,
    )


def _update_values(job: Job) -> tuple:
    return (
        job.state.value,
        job.priority,
        job.attempts,
        job.max_attempts,
        job.available_at,
        job.started_at,
        job.finished_at,
        job.worker_id,
        job.last_error,
        json.dumps(job.result) if job.result is not None else None,
    )


def _is_inflight_conflict(error: sqlite3.IntegrityError) -> bool:
    message = str(error)
    return "UNIQUE" in message and "jobs.queue" in message


class SQLiteJobStore:
    """JobStore persisted in SQLite through a ConnectionPool."""

    def __init__(self, pool: ConnectionPool, *, initialize: bool = True) -> None:
        """Create the store.

        Args:
            pool: Connection pool for the database.
            initialize: Create the schema if it doesn't exist yet.
        """
        self._pool = pool
        if initialize:
            with pool.write_connection() as conn:
                initialize_database(conn)

    def _next_seq(self, conn: sqlite3.Connection) -> int:
        conn.execute("UPDATE job_sequence SET value = value + 1 WHERE id = 1")
        row = conn.execute("SELECT value FROM job_sequence WHERE id = 1").fetchone()
        return row[0]

    def _find_in_flight(
        self, conn: sqlite3.Connection, queue: QueueName, note_id: str
    ) -> str | None:
        row = conn.execute(
            """
            SELECT id FROM jobs
            WHERE queue = ? AND note_id = ? AND state IN ('waiting', 'active')
            """,
            (queue.value, note_id),
        ).fetchone()
        return row["id"] if row else None

    def insert(self, job: Job) -> Job:
        def _insert() -> int:
            with self._pool.transaction() as conn:
                existing = self._find_in_flight(conn, job.queue, job.note_id)
                if existing is not None:
                    raise DuplicateActiveJob(job.queue.value, job.note_id, existing)
                seq = self._next_seq(conn)
                try:
                    conn.execute(
                        """
                        INSERT INTO jobs (
                            id, queue, note_id, payload_json, state, priority,
                            attempts, max_attempts, seq, available_at, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            job.id,
                            job.queue.value,
                            job.note_id,
                            job.payload_json(),
                            job.state.value,
                            job.priority,
                            job.attempts,
                            job.max_attempts,
                            seq,
                            job.available_at,
                            job.created_at,
                        ),
                    )
                except sqlite3.IntegrityError as e:
                    if _is_inflight_conflict(e):
                        raise DuplicateActiveJob(job.queue.value, job.note_id) from e
                    raise
                return seq

        seq = execute_with_retry(_insert)
        job.seq = seq
        return job

    def claim_next(self, queue: QueueName, worker_id: str, now: str) -> Job | None:
        def _claim() -> Job | None:
            with self._pool.transaction() as conn:
                paused = conn.execute(
                    "SELECT paused FROM queues WHERE name = ?", (queue.value,)
                ).fetchone()
                if paused is not None and paused["paused"]:
                    return None

                row = conn.execute(
                    """
                    SELECT id FROM jobs
                    WHERE queue = ? AND state = 'waiting' AND available_at <= ?
                    ORDER BY priority ASC, seq ASC
                    LIMIT 1
                    """,
                    (queue.value, now),
                ).fetchone()
                if row is None:
                    return None

                conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'active', started_at = ?, worker_id = ?
                    WHERE id = ? AND state = 'waiting'
                    """,
                    (now, worker_id, row["id"]),
                )
                claimed = conn.execute(
                    "SELECT * FROM jobs WHERE id = ?", (row["id"],)
                ).fetchone()
                return _row_to_job(claimed)

        return execute_with_retry(_claim)

    def get(self, job_id: str) -> Job | None:
        with self._pool.read_connection() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row is not None else None

    def _conditional_update(
        self,
        conn: sqlite3.Connection,
        job: Job,
        expected_state: JobState,
        expected_worker: str | None,
    ) -> bool:
        assignments = ", ".join(f"{col} = ?" for col in _UPDATE_COLUMNS)
        where = "id = ? AND state = ?"
        params: list[Any] = [*_update_values(job), job.id, expected_state.value]
        if expected_worker is not None:
            where += " AND worker_id = ?"
            params.append(expected_worker)
        cursor = conn.execute(
            f"UPDATE jobs SET {assignments} WHERE {where}",  # nosec B608
            params,
        )
        return cursor.rowcount > 0

    def update(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        def _update() -> bool:
            with self._pool.transaction() as conn:
                return self._conditional_update(
                    conn, job, expected_state, expected_worker
                )

        return execute_with_retry(_update)

    def requeue(
        self,
        job: Job,
        *,
        expected_state: JobState,
        expected_worker: str | None = None,
    ) -> bool:
        def _requeue() -> bool:
            with self._pool.transaction() as conn:
                if expected_state != JobState.ACTIVE:
                    existing = self._find_in_flight(conn, job.queue, job.note_id)
                    if existing is not None and existing != job.id:
                        raise DuplicateActiveJob(
                            job.queue.value, job.note_id, existing
                        )
                job.state = JobState.WAITING
                try:
                    if not self._conditional_update(
                        conn, job, expected_state, expected_worker
                    ):
                        return False
                except sqlite3.IntegrityError as e:
                    if _is_inflight_conflict(e):
                        raise DuplicateActiveJob(job.queue.value, job.note_id) from e
                    raise
                job.seq = self._next_seq(conn)
                conn.execute(
                    "UPDATE jobs SET seq = ? WHERE id = ?", (job.seq, job.id)
                )
                return True

        return execute_with_retry(_requeue)

    def delete(self, job_id: str, *, expected_state: JobState) -> bool:
        with self._pool.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM jobs WHERE id = ? AND state = ?",
                (job_id, expected_state.value),
            )
            return cursor.rowcount > 0

    def list_jobs(
        self, queue: QueueName, state: JobState | None = None, limit: int = 100
    ) -> list[Job]:
        query = "SELECT * FROM jobs WHERE queue = ?"
        params: list = [queue.value]
        if state is not None:
            query += " AND state = ?"
            params.append(state.value)
        query += " ORDER BY seq DESC LIMIT ?"
        params.append(limit)
        rows = self._pool.execute_read(query, tuple(params))
        return [_row_to_job(row) for row in rows]

    def count_by_state(self, queue: QueueName, now: str) -> dict[str, int]:
        rows = self._pool.execute_read(
            """
            SELECT
                CASE
                    WHEN state = 'waiting' AND available_at > ? THEN 'delayed'
                    ELSE state
                END AS bucket,
                COUNT(*) AS n
            FROM jobs
            WHERE queue = ?
            GROUP BY bucket
            """,
            (now, queue.value),
        )
        counts = empty_counts()
        for row in rows:
            counts[row["bucket"]] = row["n"]
        return counts

    def delete_terminal(
        self, queue: QueueName, states: Iterable[JobState], finished_before: str
    ) -> int:
        values = [s.value for s in states if s.is_terminal]
        if not values:
            return 0
        placeholders = ", ".join("?" for _ in values)
        with self._pool.transaction() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM jobs
                WHERE queue = ? AND state IN ({placeholders})
                  AND finished_at IS NOT NULL AND finished_at < ?
                """,  # nosec B608
                (queue.value, *values, finished_before),
            )
            return cursor.rowcount

    def trim_terminal(self, queue: QueueName, state: JobState, keep: int) -> int:
        if not state.is_terminal:
            return 0
        with self._pool.transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM jobs
                WHERE queue = ? AND state = ? AND id NOT IN (
                    SELECT id FROM jobs
                    WHERE queue = ? AND state = ?
                    ORDER BY finished_at DESC, seq DESC
                    LIMIT ?
                )
                """,
                (queue.value, state.value, queue.value, state.value, keep),
            )
            return cursor.rowcount

    def find_stale_active(self, started_before: str) -> list[Job]:
        rows = self._pool.execute_read(
            """
            SELECT * FROM jobs
            WHERE state = 'active' AND started_at IS NOT NULL AND started_at < ?
            ORDER BY started_at ASC
            """,
            (started_before,),
        )
        return [_row_to_job(row) for row in rows]

    def is_paused(self, queue: QueueName) -> bool:
        rows = self._pool.execute_read(
            "SELECT paused FROM queues WHERE name = ?", (queue.value,)
        )
        return bool(rows and rows[0]["paused"])

    def set_paused(self, queue: QueueName, paused: bool, now: str) -> None:
        with self._pool.transaction() as conn:
            conn.execute(
                """
                INSERT INTO queues (name, paused, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    paused = excluded.paused, updated_at = excluded.updated_at
                """,
                (queue.value, int(paused), now),
            )

    def close(self) -> None:
        """The pool is owned by the caller; nothing to release here."""
