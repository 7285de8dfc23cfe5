"""Note repository: the store of notes that jobs read and update."""

from vno.notes.repository import (
    InMemoryNoteRepository,
    InvalidStatusTransition,
    NoteNotFoundError,
    NoteRepository,
    NoteRepositoryError,
    SQLiteNoteRepository,
)

__all__ = [
    "InMemoryNoteRepository",
    "InvalidStatusTransition",
    "NoteNotFoundError",
    "NoteRepository",
    "NoteRepositoryError",
    "SQLiteNoteRepository",
]
