"""Tests for the offline mock providers."""

from pathlib import Path

import pytest

from vno.config.models import ProviderConfig
from vno.jobs.payloads import SummarizePayload, TranscribePayload
from vno.providers import (
    MockSummarizationProvider,
    MockTranscriptionProvider,
    OpenAISummarizationProvider,
    create_summarization_provider,
    create_transcription_provider,
)
from vno.providers.base import ProviderTerminalError


class TestMockTranscriptionProvider:
    """Tests for MockTranscriptionProvider."""

    def test_transcribes_existing_file(self, media_file: Path) -> None:
        provider = MockTranscriptionProvider()
        result = provider.process(
            TranscribePayload(note_id="n1", media_path=str(media_file), language="de")
        )
        assert "memo.m4a" in result.text
        assert result.language == "de"
        assert result.metadata["bytes"] == 128

    def test_relative_path_uses_media_root(self, media_file: Path) -> None:
        provider = MockTranscriptionProvider(media_root=media_file.parent)
        result = provider.process(
            TranscribePayload(note_id="n1", media_path="memo.m4a")
        )
        assert result.language == "en"

    def test_missing_media_is_terminal(self, tmp_path: Path) -> None:
        provider = MockTranscriptionProvider()
        with pytest.raises(ProviderTerminalError, match="not found"):
            provider.process(
                TranscribePayload(note_id="n1", media_path=str(tmp_path / "x.wav"))
            )

    def test_missing_media_allowed_when_not_required(self, tmp_path: Path) -> None:
        provider = MockTranscriptionProvider(require_media=False)
        result = provider.process(
            TranscribePayload(note_id="n1", media_path=str(tmp_path / "x.wav"))
        )
        assert result.metadata["bytes"] == 0


class TestMockSummarizationProvider:
    """Tests for MockSummarizationProvider."""

    TRANSCRIPT = (
        "We reviewed the roadmap. The launch moves to May. "
        "We need to update the docs. Someone must call the vendor today."
    )

    def test_summary_and_bullets(self) -> None:
        result = MockSummarizationProvider().process(
            SummarizePayload(note_id="n1", transcript=self.TRANSCRIPT)
        )
        assert result.tl_dr == "We reviewed the roadmap."
        assert result.bullets[0] == "The launch moves to May."

    def test_action_items_extracted(self) -> None:
        result = MockSummarizationProvider().process(
            SummarizePayload(note_id="n1", transcript=self.TRANSCRIPT)
        )
        texts = [item.text for item in result.action_items]
        assert texts == [
            "We need to update the docs",
            "Someone must call the vendor today",
        ]
        assert result.action_items[0].priority == "medium"
        assert result.action_items[1].priority == "high"
        assert all(item.due_suggested for item in result.action_items)

    def test_deterministic(self) -> None:
        provider = MockSummarizationProvider()
        payload = SummarizePayload(note_id="n1", transcript=self.TRANSCRIPT)
        assert provider.process(payload).summary_text == (
            provider.process(payload).summary_text
        )


class TestProviderFactories:
    """Tests for create_*_provider()."""

    def test_mock_by_default(self) -> None:
        config = ProviderConfig()
        assert isinstance(
            create_transcription_provider(config), MockTranscriptionProvider
        )
        assert isinstance(
            create_summarization_provider(config), MockSummarizationProvider
        )

    def test_openai_requires_key(self) -> None:
        config = ProviderConfig(transcription="openai")
        with pytest.raises(ValueError, match="API key"):
            create_transcription_provider(config)

    def test_openai_summarizer(self) -> None:
        config = ProviderConfig(summarization="openai", api_key="sk-test")
        provider = create_summarization_provider(config, timeout=5.0)
        assert isinstance(provider, OpenAISummarizationProvider)
