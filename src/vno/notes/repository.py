"""Note repository used by job processing.

The repository is the only writer of note rows. Job handlers call
``update_status``, ``set_transcript`` and ``set_summary``; status changes
are checked against the allowed transitions.

Two implementations share the ``NoteRepository`` protocol:
- SQLiteNoteRepository: durable, backed by a ConnectionPool
- InMemoryNoteRepository: thread-safe dict, for tests and dev mode
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

from vno.core.datetime_utils import utcnow_iso
from vno.db.connection import ConnectionPool
from vno.db.types import ActionItem, Note, NoteStatus, is_valid_note_transition

logger = logging.getLogger(__name__)


class NoteRepositoryError(Exception):
    """Base exception for note repository errors."""


class NoteNotFoundError(NoteRepositoryError):
    """Raised when a note doesn't exist."""

    def __init__(self, note_id: str) -> None:
        self.note_id = note_id
        super().__init__(f"Note {note_id} not found")


class InvalidStatusTransition(NoteRepositoryError):
    """Raised when a note status change is not allowed."""

    def __init__(self, note_id: str, current: NoteStatus, new: NoteStatus) -> None:
        self.note_id = note_id
        self.current = current
        self.new = new
        super().__init__(
            f"Note {note_id}: cannot move from {current.value} to {new.value}"
        )


class NoteRepository(Protocol):
    """Persistence operations for notes."""

    def create_note(
        self,
        owner_id: str,
        *,
        media_path: str | None = None,
        title: str | None = None,
        language: str | None = None,
        tags: Sequence[str] = (),
        status: NoteStatus = NoteStatus.UPLOADED,
    ) -> Note: ...

    def get_note(self, note_id: str) -> Note | None: ...

    def update_status(self, note_id: str, status: NoteStatus) -> Note: ...

    def set_transcript(self, note_id: str, transcript: str) -> Note: ...

    def set_summary(
        self,
        note_id: str,
        summary: str,
        action_items: Sequence[ActionItem] = (),
    ) -> Note: ...


def _copy(note: Note) -> Note:
    return replace(note, tags=list(note.tags), action_items=list(note.action_items))


def _check_transition(note: Note, status: NoteStatus) -> None:
    if not is_valid_note_transition(note.status, status):
        raise InvalidStatusTransition(note.id, note.status, status)


class InMemoryNoteRepository:
    """Dictionary-backed note repository."""

    def __init__(self) -> None:
        self._notes: dict[str, Note] = {}
        self._lock = threading.Lock()

    def create_note(
        self,
        owner_id: str,
        *,
        media_path: str | None = None,
        title: str | None = None,
        language: str | None = None,
        tags: Sequence[str] = (),
        status: NoteStatus = NoteStatus.UPLOADED,
    ) -> Note:
        now = utcnow_iso()
        note = Note(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            status=status,
            title=title,
            tags=list(tags),
            media_path=media_path,
            language=language,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._notes[note.id] = note
        return _copy(note)

    def get_note(self, note_id: str) -> Note | None:
        with self._lock:
            note = self._notes.get(note_id)
            return _copy(note) if note is not None else None

    def _modify(self, note_id: str, **changes) -> Note:
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                raise NoteNotFoundError(note_id)
            if "status" in changes:
                _check_transition(note, changes["status"])
            updated = replace(note, updated_at=utcnow_iso(), **changes)
            self._notes[note_id] = updated
            return _copy(updated)

    def update_status(self, note_id: str, status: NoteStatus) -> Note:
        return self._modify(note_id, status=status)

    def set_transcript(self, note_id: str, transcript: str) -> Note:
        return self._modify(note_id, transcript=transcript)

    def set_summary(
        self,
        note_id: str,
        summary: str,
        action_items: Sequence[ActionItem] = (),
    ) -> Note:
        return self._modify(note_id, summary=summary, action_items=list(action_items))


def _row_to_note(row: sqlite3.Row) -> Note:
    return Note(
        id=row["id"],
        owner_id=row["owner_id"],
        status=NoteStatus(row["status"]),
        title=row["title"],
        tags=json.loads(row["tags_json"] or "[]"),
        media_path=row["media_path"],
        language=row["language"],
        transcript=row["transcript"],
        summary=row["summary"],
        action_items=[
            ActionItem.from_dict(item)
            for item in json.loads(row["action_items_json"] or "[]")
        ],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SQLiteNoteRepository:
    """Note repository backed by the ``notes`` table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create_note(
        self,
        owner_id: str,
        *,
        media_path: str | None = None,
        title: str | None = None,
        language: str | None = None,
        tags: Sequence[str] = (),
        status: NoteStatus = NoteStatus.UPLOADED,
    ) -> Note:
        note_id = str(uuid.uuid4())
        now = utcnow_iso()
        with self._pool.transaction() as conn:
            conn.execute(
                """
                INSERT INTO notes (
                    id, owner_id, status, title, tags_json, media_path,
                    language, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    note_id,
                    owner_id,
                    status.value,
                    title,
                    json.dumps(list(tags)),
                    media_path,
                    language,
                    now,
                    now,
                ),
            )
        logger.debug("Created note %s for owner %s", note_id, owner_id)
        return self._require(note_id)

    def get_note(self, note_id: str) -> Note | None:
        with self._pool.read_connection() as conn:
            row = conn.execute(
                "SELECT * FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
        return _row_to_note(row) if row is not None else None

    def _require(self, note_id: str) -> Note:
        note = self.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def _update(self, note_id: str, assignments: str, params: tuple) -> None:
        # assignments are column names from this class, never user input
        query = f"UPDATE notes SET {assignments}, updated_at = ? WHERE id = ?"
        with self._pool.transaction() as conn:
            cursor = conn.execute(query, (*params, utcnow_iso(), note_id))
            if cursor.rowcount == 0:
                raise NoteNotFoundError(note_id)

    def update_status(self, note_id: str, status: NoteStatus) -> Note:
        with self._pool.transaction() as conn:
            row = conn.execute(
                "SELECT status FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
            if row is None:
                raise NoteNotFoundError(note_id)
            current = NoteStatus(row["status"])
            if not is_valid_note_transition(current, status):
                raise InvalidStatusTransition(note_id, current, status)
            conn.execute(
                "UPDATE notes SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, utcnow_iso(), note_id),
            )
        return self._require(note_id)

    def set_transcript(self, note_id: str, transcript: str) -> Note:
        self._update(note_id, "transcript = ?", (transcript,))
        return self._require(note_id)

    def set_summary(
        self,
        note_id: str,
        summary: str,
        action_items: Sequence[ActionItem] = (),
    ) -> Note:
        items_json = json.dumps([item.to_dict() for item in action_items])
        self._update(
            note_id, "summary = ?, action_items_json = ?", (summary, items_json)
        )
        return self._require(note_id)
