"""Tests for database schema setup."""

import sqlite3

import pytest

from vno.db.schema import SCHEMA_VERSION, get_schema_version, initialize_database


@pytest.fixture
def conn():
    conn = sqlite3.connect(":memory:", isolation_level=None)
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


def _insert_job(conn, job_id: str, state: str, note_id: str = "n1") -> None:
    conn.execute(
        """
        INSERT INTO jobs (id, queue, note_id, payload_json, state, seq,
                          available_at, created_at)
        VALUES (?, 'transcribe', ?, '{}', ?, 1, 'now', 'now')
        """,
        (job_id, note_id, state),
    )


class TestInitializeDatabase:
    """Tests for initialize_database()."""

    def test_creates_tables(self, conn) -> None:
        """All tables exist after initialization."""
        initialize_database(conn)
        names = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"notes", "jobs", "queues", "job_sequence", "_meta"} <= names

    def test_records_schema_version(self, conn) -> None:
        assert get_schema_version(conn) == 0
        initialize_database(conn)
        assert get_schema_version(conn) == SCHEMA_VERSION

    def test_idempotent(self, conn) -> None:
        """Running twice keeps existing data."""
        initialize_database(conn)
        _insert_job(conn, "j1", "completed")
        initialize_database(conn)
        assert conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0] == 1


class TestInFlightIndex:
    """The partial unique index allows one waiting/active job per note."""

    def test_second_waiting_job_rejected(self, conn) -> None:
        initialize_database(conn)
        _insert_job(conn, "j1", "waiting")
        with pytest.raises(sqlite3.IntegrityError):
            _insert_job(conn, "j2", "active")

    def test_finished_jobs_do_not_count(self, conn) -> None:
        """Completed and failed history doesn't block a new job."""
        initialize_database(conn)
        _insert_job(conn, "j1", "completed")
        _insert_job(conn, "j2", "failed")
        _insert_job(conn, "j3", "waiting")
        assert conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0] == 3

    def test_other_notes_unaffected(self, conn) -> None:
        initialize_database(conn)
        _insert_job(conn, "j1", "waiting", note_id="n1")
        _insert_job(conn, "j2", "waiting", note_id="n2")

    def test_unknown_state_rejected(self, conn) -> None:
        initialize_database(conn)
        with pytest.raises(sqlite3.IntegrityError):
            _insert_job(conn, "j1", "running")
