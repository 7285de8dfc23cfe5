"""Tests for domain types."""

import pytest

from vno.db.types import (
    ActionItem,
    JobState,
    NoteStatus,
    QueueName,
    QueueStats,
    is_valid_note_transition,
)


class TestNoteTransitions:
    """Tests for is_valid_note_transition()."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (NoteStatus.UPLOADED, NoteStatus.TRANSCRIBING),
            (NoteStatus.TRANSCRIBING, NoteStatus.SUMMARIZING),
            (NoteStatus.TRANSCRIBING, NoteStatus.READY),
            (NoteStatus.SUMMARIZING, NoteStatus.READY),
            (NoteStatus.READY, NoteStatus.SUMMARIZING),
            (NoteStatus.ERROR, NoteStatus.TRANSCRIBING),
            (NoteStatus.TRANSCRIBING, NoteStatus.TRANSCRIBING),
        ],
    )
    def test_allowed(self, current: NoteStatus, new: NoteStatus) -> None:
        assert is_valid_note_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (NoteStatus.UPLOADED, NoteStatus.READY),
            (NoteStatus.READY, NoteStatus.TRANSCRIBING),
            (NoteStatus.IDLE, NoteStatus.SUMMARIZING),
            (NoteStatus.SUMMARIZING, NoteStatus.UPLOADED),
        ],
    )
    def test_rejected(self, current: NoteStatus, new: NoteStatus) -> None:
        assert not is_valid_note_transition(current, new)

    @pytest.mark.parametrize("current", list(NoteStatus))
    def test_error_reachable_from_anywhere(self, current: NoteStatus) -> None:
        assert is_valid_note_transition(current, NoteStatus.ERROR)


class TestQueueName:
    """Tests for QueueName.parse()."""

    def test_known_names(self) -> None:
        assert QueueName.parse("transcribe") is QueueName.TRANSCRIBE
        assert QueueName.parse("summarize") is QueueName.SUMMARIZE

    def test_unknown_name_message(self) -> None:
        """The error names the valid queues and nothing else."""
        with pytest.raises(ValueError) as exc_info:
            QueueName.parse("bogus")
        assert str(exc_info.value) == (
            "Invalid queue name. Must be transcribe or summarize."
        )


class TestJobState:
    """Tests for JobState."""

    def test_terminal_states(self) -> None:
        assert JobState.COMPLETED.is_terminal
        assert JobState.FAILED.is_terminal
        assert not JobState.WAITING.is_terminal
        assert not JobState.ACTIVE.is_terminal


class TestQueueStats:
    """Tests for QueueStats."""

    def test_total_and_dict(self) -> None:
        stats = QueueStats(waiting=1, active=2, completed=3, failed=4, delayed=5)
        assert stats.total == 15
        assert stats.to_dict() == {
            "waiting": 1,
            "active": 2,
            "completed": 3,
            "failed": 4,
            "delayed": 5,
            "paused": False,
        }


class TestActionItem:
    """Tests for ActionItem."""

    def test_from_dict_defaults(self) -> None:
        """Missing optional keys get defaults; unknown keys are ignored."""
        item = ActionItem.from_dict({"text": "Call Bob", "extra": 1})
        assert item == ActionItem(text="Call Bob")
        assert item.to_dict()["priority"] == "medium"
