"""Tests for job payload validation."""

import pytest

from vno.db.types import QueueName
from vno.jobs.exceptions import QueueValidationError
from vno.jobs.payloads import SummarizePayload, TranscribePayload, parse_payload


class TestParsePayload:
    """Tests for parse_payload()."""

    def test_transcribe_payload(self) -> None:
        payload = parse_payload(
            QueueName.TRANSCRIBE, "n1", {"media_path": "a.m4a", "language": "en"}
        )
        assert isinstance(payload, TranscribePayload)
        assert payload.note_id == "n1"
        assert payload.language == "en"

    def test_summarize_payload(self) -> None:
        payload = parse_payload(QueueName.SUMMARIZE, "n1", {"transcript": "hi"})
        assert isinstance(payload, SummarizePayload)

    def test_note_id_must_match(self) -> None:
        with pytest.raises(QueueValidationError, match="does not match"):
            parse_payload(
                QueueName.TRANSCRIBE, "n1", {"note_id": "n2", "media_path": "a"}
            )

    def test_missing_field(self) -> None:
        with pytest.raises(QueueValidationError, match="media_path"):
            parse_payload(QueueName.TRANSCRIBE, "n1", {})

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(QueueValidationError, match="Invalid transcribe payload"):
            parse_payload(
                QueueName.TRANSCRIBE, "n1", {"media_path": "a", "speed": "fast"}
            )

    def test_blank_transcript_rejected(self) -> None:
        with pytest.raises(QueueValidationError, match="transcript"):
            parse_payload(QueueName.SUMMARIZE, "n1", {"transcript": "   "})

    def test_non_dict_rejected(self) -> None:
        with pytest.raises(QueueValidationError, match="JSON object"):
            parse_payload(QueueName.SUMMARIZE, "n1", ["x"])  # type: ignore[arg-type]

    def test_validation_error_is_value_error(self) -> None:
        """Callers that only know ValueError still catch payload errors."""
        with pytest.raises(ValueError):
            parse_payload(QueueName.SUMMARIZE, "n1", {})
