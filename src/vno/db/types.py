"""Domain types for notes, jobs and queues.

These are plain dataclasses mirroring the database rows. Enum values are
the strings stored in the database and returned by the admin API.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class NoteStatus(Enum):
    """Processing status of a note."""

    IDLE = "idle"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    SUMMARIZING = "summarizing"
    READY = "ready"
    ERROR = "error"


# Transitions driven by job processing. ERROR is reachable from anywhere.
NOTE_STATUS_TRANSITIONS: dict[NoteStatus, frozenset[NoteStatus]] = {
    NoteStatus.IDLE: frozenset({NoteStatus.UPLOADING, NoteStatus.UPLOADED}),
    NoteStatus.UPLOADING: frozenset({NoteStatus.UPLOADED}),
    NoteStatus.UPLOADED: frozenset({NoteStatus.TRANSCRIBING}),
    NoteStatus.TRANSCRIBING: frozenset(
        {NoteStatus.TRANSCRIBING, NoteStatus.SUMMARIZING, NoteStatus.READY}
    ),
    NoteStatus.SUMMARIZING: frozenset({NoteStatus.SUMMARIZING, NoteStatus.READY}),
    NoteStatus.READY: frozenset({NoteStatus.SUMMARIZING}),
    NoteStatus.ERROR: frozenset({NoteStatus.TRANSCRIBING, NoteStatus.SUMMARIZING}),
}


def is_valid_note_transition(current: NoteStatus, new: NoteStatus) -> bool:
    """Return True if a note may move from current to new status."""
    if new == NoteStatus.ERROR:
        return True
    return new in NOTE_STATUS_TRANSITIONS.get(current, frozenset())


class QueueName(Enum):
    """Named job queues. Each queue holds one kind of work."""

    TRANSCRIBE = "transcribe"
    SUMMARIZE = "summarize"

    @classmethod
    def parse(cls, value: str) -> QueueName:
        """Look up a queue by name.

        Raises:
            ValueError: If value is not a known queue name.
        """
        try:
            return cls(value)
        except ValueError:
            names = " or ".join(q.value for q in cls)
            raise ValueError(f"Invalid queue name. Must be {names}.") from None


class JobState(Enum):
    """Lifecycle state of a job.

    State transitions:
        waiting -> active          (dequeue)
        active  -> completed       (mark_completed)
        active  -> waiting         (retryable failure, attempts remain)
        active  -> failed          (terminal failure or attempts exhausted)

    Terminal states: completed, failed
    """

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for states a job never leaves on its own."""
        return self in (JobState.COMPLETED, JobState.FAILED)


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})
NON_TERMINAL_STATES = frozenset({JobState.WAITING, JobState.ACTIVE})


@dataclass
class ActionItem:
    """A checklist item extracted from a note summary."""

    text: str
    priority: str = "medium"
    category: str | None = None
    due_suggested: str | None = None  # ISO 8601
    done: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionItem:
        """Build from a dictionary, ignoring unknown keys."""
        return cls(
            text=str(data["text"]),
            priority=data.get("priority") or "medium",
            category=data.get("category"),
            due_suggested=data.get("due_suggested"),
            done=bool(data.get("done", False)),
        )


@dataclass
class Note:
    """Database record for notes table."""

    id: str  # UUID v4
    owner_id: str
    status: NoteStatus
    title: str | None = None
    tags: list[str] = field(default_factory=list)
    media_path: str | None = None
    language: str | None = None
    transcript: str | None = None
    summary: str | None = None
    action_items: list[ActionItem] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "title": self.title,
            "tags": list(self.tags),
            "media_path": self.media_path,
            "language": self.language,
            "transcript": self.transcript,
            "summary": self.summary,
            "action_items": [item.to_dict() for item in self.action_items],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Job:
    """Database record for jobs table."""

    id: str  # UUID v4
    queue: QueueName
    note_id: str
    payload: dict[str, Any]
    state: JobState
    priority: int  # Lower = dequeued first
    attempts: int  # Failed attempts so far
    max_attempts: int
    seq: int  # Enqueue order; reassigned when a retry goes to the tail
    available_at: str  # ISO-8601 UTC, earliest dequeue time
    created_at: str
    started_at: str | None = None
    finished_at: str | None = None
    worker_id: str | None = None
    last_error: str | None = None
    result: dict[str, Any] | None = None

    @property
    def attempts_remaining(self) -> int:
        """Attempts left before the job becomes terminal-failed."""
        return max(0, self.max_attempts - self.attempts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "queue": self.queue.value,
            "note_id": self.note_id,
            "payload": self.payload,
            "state": self.state.value,
            "priority": self.priority,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "available_at": self.available_at,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "worker_id": self.worker_id,
            "last_error": self.last_error,
            "result": self.result,
        }

    def payload_json(self) -> str:
        """Serialize payload for storage."""
        return json.dumps(self.payload, sort_keys=True)


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time counts for one queue. Never persisted."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: bool = False

    @property
    def total(self) -> int:
        """Total number of jobs held by the queue."""
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)
