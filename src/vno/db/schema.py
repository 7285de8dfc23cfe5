"""Database schema definition for Voice Note Orchestrator.

The schema holds notes, jobs and per-queue control state. A partial
unique index on jobs enforces at most one non-terminal job per note and
queue, so the invariant holds even across processes.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS _meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'idle',
    title TEXT,
    tags_json TEXT NOT NULL DEFAULT '[]',
    media_path TEXT,
    language TEXT,
    transcript TEXT,
    summary TEXT,
    action_items_json TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,   -- ISO 8601 UTC timestamp
    updated_at TEXT NOT NULL    -- ISO 8601 UTC timestamp
);

CREATE INDEX IF NOT EXISTS idx_notes_owner ON notes(owner_id);
CREATE INDEX IF NOT EXISTS idx_notes_status ON notes(status);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    queue TEXT NOT NULL,
    note_id TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'waiting',
    priority INTEGER NOT NULL DEFAULT 10,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 3,
    seq INTEGER NOT NULL,
    available_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT,
    worker_id TEXT,
    last_error TEXT,
    result_json TEXT,
    CHECK (state IN ('waiting', 'active', 'completed', 'failed')),
    CHECK (attempts <= max_attempts)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_one_inflight_per_note
    ON jobs(queue, note_id) WHERE state IN ('waiting', 'active');
CREATE INDEX IF NOT EXISTS idx_jobs_claim
    ON jobs(queue, state, priority, seq);
CREATE INDEX IF NOT EXISTS idx_jobs_finished
    ON jobs(queue, state, finished_at);

CREATE TABLE IF NOT EXISTS queues (
    name TEXT PRIMARY KEY,
    paused INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS job_sequence (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    value INTEGER NOT NULL
);
"""


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, or 0 for a fresh database."""
    try:
        row = conn.execute(
            "SELECT value FROM _meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return 0
    return int(row[0]) if row else 0


def initialize_database(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist.

    Safe to call on every startup.

    Args:
        conn: Database connection.
    """
    conn.executescript(SCHEMA_SQL)
    conn.execute(
        "INSERT OR IGNORE INTO job_sequence (id, value) VALUES (1, 0)",
    )
    current = get_schema_version(conn)
    if current < SCHEMA_VERSION:
        conn.execute(
            "INSERT OR REPLACE INTO _meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        logger.debug("Database schema initialized at version %d", SCHEMA_VERSION)
    if conn.in_transaction:
        conn.commit()
