"""Database layer: connections, schema and domain types."""

from vno.db.connection import (
    ConnectionPool,
    check_database_connectivity,
    execute_with_retry,
)
from vno.db.schema import SCHEMA_VERSION, initialize_database
from vno.db.types import (
    NON_TERMINAL_STATES,
    TERMINAL_STATES,
    ActionItem,
    Job,
    JobState,
    Note,
    NoteStatus,
    QueueName,
    QueueStats,
    is_valid_note_transition,
)

__all__ = [
    # Connection
    "ConnectionPool",
    "check_database_connectivity",
    "execute_with_retry",
    # Schema
    "SCHEMA_VERSION",
    "initialize_database",
    # Types
    "ActionItem",
    "Job",
    "JobState",
    "NON_TERMINAL_STATES",
    "Note",
    "NoteStatus",
    "QueueName",
    "QueueStats",
    "TERMINAL_STATES",
    "is_valid_note_transition",
]
