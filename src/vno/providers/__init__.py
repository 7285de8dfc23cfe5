"""External transcription and summarization providers."""

from __future__ import annotations

from pathlib import Path

from vno.config.models import ProviderConfig
from vno.providers.base import (
    ProviderError,
    ProviderTerminalError,
    ProviderTransientError,
    SummarizationProvider,
    SummaryResult,
    TranscriptionProvider,
    TranscriptionResult,
    error_for_status,
    is_retryable_status,
)
from vno.providers.mock import MockSummarizationProvider, MockTranscriptionProvider
from vno.providers.openai import (
    OpenAISummarizationProvider,
    OpenAITranscriptionProvider,
)


def create_transcription_provider(
    config: ProviderConfig, *, media_root: Path | None = None, timeout: float = 120.0
) -> TranscriptionProvider:
    """Build the configured transcription provider.

    Raises:
        ValueError: If the provider is misconfigured (e.g. missing API key).
    """
    if config.transcription == "openai":
        return OpenAITranscriptionProvider(
            api_key=config.api_key,
            base_url=config.base_url,
            model=config.transcription_model,
            timeout=timeout,
            media_root=media_root,
        )
    return MockTranscriptionProvider(media_root=media_root)


def create_summarization_provider(
    config: ProviderConfig, *, timeout: float = 120.0
) -> SummarizationProvider:
    """Build the configured summarization provider.

    Raises:
        ValueError: If the provider is misconfigured (e.g. missing API key).
    """
    if config.summarization == "openai":
        return OpenAISummarizationProvider(
            api_key=config.api_key,
            base_url=config.base_url,
            model=config.summarization_model,
            timeout=timeout,
            default_language=config.language or "English",
        )
    return MockSummarizationProvider()


__all__ = [
    "MockSummarizationProvider",
    "MockTranscriptionProvider",
    "OpenAISummarizationProvider",
    "OpenAITranscriptionProvider",
    "ProviderError",
    "ProviderTerminalError",
    "ProviderTransientError",
    "SummarizationProvider",
    "SummaryResult",
    "TranscriptionProvider",
    "TranscriptionResult",
    "create_summarization_provider",
    "create_transcription_provider",
    "error_for_status",
    "is_retryable_status",
]
