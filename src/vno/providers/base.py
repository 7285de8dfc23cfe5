"""Provider interfaces, results and error classification.

A provider turns a job payload into a result. Failures are raised as
ProviderTransientError (worth retrying) or ProviderTerminalError (will
fail the same way again). HTTP-backed providers map status codes with
``error_for_status``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from vno.db.types import ActionItem

if TYPE_CHECKING:
    from vno.jobs.payloads import SummarizePayload, TranscribePayload

# HTTP statuses that indicate a temporary condition on the provider side
RETRYABLE_STATUS_CODES = frozenset({408, 429})


class ProviderError(Exception):
    """Base exception for provider failures.

    Attributes:
        provider: Provider name.
        status_code: HTTP status from the provider, when there was one.
    """

    retryable = True

    def __init__(
        self, message: str, *, provider: str = "", status_code: int | None = None
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderTransientError(ProviderError):
    """Timeout, connection failure, throttling or 5xx. Retried with backoff."""

    retryable = True


class ProviderTerminalError(ProviderError):
    """Malformed input, missing media or a 4xx rejection. Never retried."""

    retryable = False


def is_retryable_status(status_code: int) -> bool:
    """Return True for HTTP statuses worth retrying."""
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def error_for_status(
    status_code: int, message: str, *, provider: str = ""
) -> ProviderError:
    """Build the provider error matching an HTTP failure status."""
    cls: type[ProviderError] = ProviderTerminalError
    if is_retryable_status(status_code):
        cls = ProviderTransientError
    return cls(
        f"{provider or 'provider'} returned HTTP {status_code}: {message}",
        provider=provider,
        status_code=status_code,
    )


@dataclass
class TranscriptionResult:
    """Transcript produced by a transcription provider."""

    text: str
    language: str | None = None
    confidence: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Summary of the result stored on the completed job."""
        return {
            "characters": len(self.text),
            "language": self.language,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }


@dataclass
class SummaryResult:
    """Summary produced by a summarization provider."""

    tl_dr: str
    bullets: list[str] = field(default_factory=list)
    action_items: list[ActionItem] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def summary_text(self) -> str:
        """Summary as stored on the note: TL;DR followed by bullet points."""
        lines = [self.tl_dr.strip()]
        lines.extend(f"- {b.strip()}" for b in self.bullets if b.strip())
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Summary of the result stored on the completed job."""
        return {
            "bullets": len(self.bullets),
            "action_items": len(self.action_items),
            "metadata": self.metadata,
        }


class TranscriptionProvider(Protocol):
    """Speech-to-text provider."""

    name: str

    def process(self, payload: TranscribePayload) -> TranscriptionResult: ...


class SummarizationProvider(Protocol):
    """Transcript summarization provider."""

    name: str

    def process(self, payload: SummarizePayload) -> SummaryResult: ...
