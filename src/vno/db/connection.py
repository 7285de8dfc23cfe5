"""Database connection management for Voice Note Orchestrator."""

from __future__ import annotations

import logging
import random
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA busy_timeout = 10000",
    "PRAGMA temp_store = MEMORY",
)


def ensure_db_directory(db_path: Path) -> None:
    """Ensure the database directory exists, creating it if necessary."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def configure_connection(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Apply the standard PRAGMAs and row factory to a connection."""
    for pragma in _PRAGMAS:
        conn.execute(pragma)
    conn.row_factory = sqlite3.Row
    return conn


def is_lock_error(error: sqlite3.OperationalError) -> bool:
    """Return True if the error was caused by lock contention."""
    message = str(error).casefold()
    return "locked" in message or "busy" in message


def execute_with_retry(
    func: Callable[[], T],
    max_retries: int = 5,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    jitter: float = 0.1,
) -> T:
    """Execute a function with exponential backoff retry on database lock errors.

    Args:
        func: Function to execute. Should raise sqlite3.OperationalError
            with "locked" or "busy" message on lock contention.
        max_retries: Maximum number of retry attempts. Default 5.
        base_delay: Initial delay in seconds. Default 0.1s.
        max_delay: Maximum delay between retries. Default 5.0s.
        jitter: Random jitter factor (0-1) to avoid thundering herd. Default 0.1.

    Returns:
        The return value of func.

    Raises:
        sqlite3.OperationalError: If all retries exhausted or non-lock error.
    """
    delay = base_delay

    for attempt in range(max_retries + 1):
        try:
            result = func()
            if attempt > 0:
                logger.info(
                    "Database operation succeeded after %d retry attempt(s)",
                    attempt,
                )
            return result
        except sqlite3.OperationalError as e:
            if not is_lock_error(e):
                raise

            if attempt >= max_retries:
                logger.warning(
                    "Database lock retry exhausted after %d attempts: %s",
                    max_retries + 1,
                    e,
                )
                raise

            jittered_delay = delay * (1 + random.uniform(-jitter, jitter))  # nosec B311
            logger.info(
                "Database locked (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1,
                max_retries + 1,
                jittered_delay,
                e,
            )
            time.sleep(jittered_delay)
            delay = min(delay * 2, max_delay)

    raise RuntimeError("execute_with_retry: unexpected state")


class ConnectionPool:
    """Thread-safe access to one SQLite database.

    Reads get a fresh connection per call so they never wait on writers
    (WAL mode). Writes share a single connection guarded by a lock, and
    ``transaction()`` wraps a block in ``BEGIN IMMEDIATE``.

    Passing ``":memory:"`` keeps everything on the shared connection,
    since each new in-memory connection would see an empty database.
    """

    def __init__(self, db_path: Path | str, timeout: float = 30.0) -> None:
        """Initialize the connection pool.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            timeout: Connection timeout in seconds.
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self._memory = self.db_path == ":memory:"
        if not self._memory:
            ensure_db_directory(Path(self.db_path))
        self._write_conn: sqlite3.Connection | None = None
        self._write_lock = threading.RLock()
        self._closed = False

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        return configure_connection(conn)

    def _get_write_connection(self) -> sqlite3.Connection:
        """Return the shared connection. Caller must hold _write_lock."""
        if self._closed:
            raise RuntimeError("Connection pool is closed")
        if self._write_conn is None:
            self._write_conn = self._create_connection()
        return self._write_conn

    @contextmanager
    def read_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a connection for read-only queries.

        Yields:
            A SQLite connection. Do not write through it.
        """
        if self._memory:
            with self._write_lock:
                yield self._get_write_connection()
            return

        if self._closed:
            raise RuntimeError("Connection pool is closed")
        conn = self._create_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def write_connection(self) -> Iterator[sqlite3.Connection]:
        """Shared write connection outside any transaction.

        For statements that manage their own transactions, such as schema
        setup with executescript().
        """
        with self._write_lock:
            yield self._get_write_connection()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for atomic write transactions.

        Commits on success, rolls back on exception. Uses BEGIN IMMEDIATE
        so the write lock is taken up front rather than on first write.

        Example:
            with pool.transaction() as conn:
                conn.execute("INSERT INTO ...", (...))
                conn.execute("UPDATE ...", (...))
        """
        start_time = time.monotonic()
        with self._write_lock:
            conn = self._get_write_connection()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            finally:
                elapsed = time.monotonic() - start_time
                if elapsed > self.timeout * 0.8:
                    logger.warning(
                        "Slow transaction: %.2fs (threshold: %.1fs)",
                        elapsed,
                        self.timeout,
                    )

    def execute_read(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute a read-only query and return all rows."""
        with self.read_connection() as conn:
            return conn.execute(query, params).fetchall()

    def close(self) -> None:
        """Close the pool. Further use raises RuntimeError."""
        with self._write_lock:
            if self._write_conn is not None:
                self._write_conn.close()
                self._write_conn = None
            self._closed = True

    @property
    def is_closed(self) -> bool:
        """Check if the pool has been closed."""
        return self._closed


def check_database_connectivity(pool: ConnectionPool | None) -> bool:
    """Return True if the database answers ``SELECT 1``."""
    if pool is None or pool.is_closed:
        return False
    try:
        pool.execute_read("SELECT 1")
        return True
    except sqlite3.Error as e:
        logger.warning("Database connectivity check failed: %s", e)
        return False
