"""Pydantic models for job payloads.

Payloads are validated when a job is enqueued and again when a worker
picks it up, so a malformed row can never reach a provider.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vno.db.types import QueueName
from vno.jobs.exceptions import QueueValidationError


class TranscribePayload(BaseModel):
    """Input for a transcription job."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    note_id: str = Field(min_length=1)
    media_path: str = Field(min_length=1)
    language: str | None = None
    model: str | None = None
    user_id: str | None = None


class SummarizePayload(BaseModel):
    """Input for a summarization job."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    note_id: str = Field(min_length=1)
    transcript: str
    language: str | None = None
    model: str | None = None
    user_id: str | None = None

    @field_validator("transcript")
    @classmethod
    def transcript_not_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only transcripts."""
        if not v.strip():
            raise ValueError("transcript must not be empty")
        return v


JobPayload = TranscribePayload | SummarizePayload

PAYLOAD_MODELS: dict[QueueName, type[BaseModel]] = {
    QueueName.TRANSCRIBE: TranscribePayload,
    QueueName.SUMMARIZE: SummarizePayload,
}


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "payload"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_payload(
    queue: QueueName, note_id: str, payload: dict[str, Any]
) -> JobPayload:
    """Validate a raw payload for a queue.

    The payload's note_id defaults to the job's note and must match it
    when given.

    Raises:
        QueueValidationError: If the payload is malformed.
    """
    if not isinstance(payload, dict):
        raise QueueValidationError("Invalid payload: expected a JSON object")
    data = dict(payload)
    data.setdefault("note_id", note_id)
    if data["note_id"] != note_id:
        raise QueueValidationError(
            f"Invalid payload: note_id {data['note_id']!r} does not match job note"
        )
    try:
        return PAYLOAD_MODELS[queue].model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise QueueValidationError(
            f"Invalid {queue.value} payload: {_describe(e)}"
        ) from e
