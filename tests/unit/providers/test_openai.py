"""Tests for the OpenAI-compatible providers, using httpx.MockTransport."""

import json
from pathlib import Path

import httpx
import pytest

from vno.jobs.payloads import SummarizePayload, TranscribePayload
from vno.providers.base import ProviderTerminalError, ProviderTransientError
from vno.providers.openai import (
    OpenAISummarizationProvider,
    OpenAITranscriptionProvider,
)


def _chat_response(content: dict | str) -> dict:
    if not isinstance(content, str):
        content = json.dumps(content)
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 40},
    }


def _summarizer(handler) -> OpenAISummarizationProvider:
    return OpenAISummarizationProvider(
        api_key="sk-test",
        base_url="https://llm.example/v1",
        transport=httpx.MockTransport(handler),
    )


class TestOpenAITranscriptionProvider:
    """Tests for OpenAITranscriptionProvider."""

    def test_posts_audio(self, media_file: Path) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"text": "hello there", "language": "en"})

        provider = OpenAITranscriptionProvider(
            api_key="sk-test",
            base_url="https://llm.example/v1/",
            transport=httpx.MockTransport(handler),
        )
        result = provider.process(
            TranscribePayload(note_id="n1", media_path=str(media_file), language="en")
        )
        provider.close()

        assert result.text == "hello there"
        assert result.metadata["model"] == "whisper-1"
        assert seen["url"] == "https://llm.example/v1/audio/transcriptions"
        assert seen["auth"] == "Bearer sk-test"
        assert b"memo.m4a" in seen["body"]

    def test_missing_media_is_terminal(self, tmp_path: Path) -> None:
        provider = OpenAITranscriptionProvider(
            api_key="sk-test",
            transport=httpx.MockTransport(lambda r: httpx.Response(200)),
        )
        with pytest.raises(ProviderTerminalError):
            provider.process(
                TranscribePayload(note_id="n1", media_path=str(tmp_path / "no.wav"))
            )

    def test_requires_api_key(self) -> None:
        with pytest.raises(ValueError, match="API key"):
            OpenAITranscriptionProvider(api_key=None)


class TestOpenAISummarizationProvider:
    """Tests for OpenAISummarizationProvider."""

    def test_parses_structured_summary(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["model"] == "gpt-4o-mini"
            assert body["response_format"] == {"type": "json_object"}
            assert "Spanish" in body["messages"][0]["content"]
            return httpx.Response(
                200,
                json=_chat_response(
                    {
                        "tl_dr": "Plan agreed.",
                        "bullets": ["Ship in May"],
                        "actions": [
                            {"text": "Book venue", "priority": "urgent"},
                            {"priority": "high"},
                        ],
                    }
                ),
            )

        result = _summarizer(handler).process(
            SummarizePayload(note_id="n1", transcript="...", language="Spanish")
        )
        assert result.tl_dr == "Plan agreed."
        assert result.bullets == ["Ship in May"]
        assert [item.text for item in result.action_items] == ["Book venue"]
        assert result.action_items[0].priority == "medium"
        assert result.metadata["input_tokens"] == 120

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient_statuses(self, status: int) -> None:
        provider = _summarizer(lambda r: httpx.Response(status))
        with pytest.raises(ProviderTransientError) as exc_info:
            provider.process(SummarizePayload(note_id="n1", transcript="hi"))
        assert exc_info.value.status_code == status

    def test_client_error_is_terminal(self) -> None:
        provider = _summarizer(lambda r: httpx.Response(400))
        with pytest.raises(ProviderTerminalError):
            provider.process(SummarizePayload(note_id="n1", transcript="hi"))

    def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderTransientError, match="timed out"):
            _summarizer(handler).process(
                SummarizePayload(note_id="n1", transcript="hi")
            )

    def test_connection_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderTransientError, match="Cannot reach"):
            _summarizer(handler).process(
                SummarizePayload(note_id="n1", transcript="hi")
            )

    @pytest.mark.parametrize(
        "content", ["not json", {"bullets": []}, {"tl_dr": "   "}]
    )
    def test_unusable_content_is_transient(self, content) -> None:
        provider = _summarizer(
            lambda r: httpx.Response(200, json=_chat_response(content))
        )
        with pytest.raises(ProviderTransientError):
            provider.process(SummarizePayload(note_id="n1", transcript="hi"))
