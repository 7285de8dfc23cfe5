"""OpenAI-compatible HTTP providers.

Transcription uses ``/audio/transcriptions`` and summarization uses
``/chat/completions`` with a JSON response format. Any server speaking
the same API can be used through ``base_url``.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any

import httpx

from vno.core.datetime_utils import to_iso, utcnow
from vno.db.types import ActionItem
from vno.jobs.payloads import SummarizePayload, TranscribePayload
from vno.providers.base import (
    ProviderTerminalError,
    ProviderTransientError,
    SummaryResult,
    TranscriptionResult,
    error_for_status,
)

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """\
You summarize transcripts of voice notes. Reply with a single JSON object:
{
  "tl_dr": "short summary, at most 100 words",
  "bullets": ["key point", "..."],
  "actions": [
    {"text": "action to take", "priority": "high|medium|low", "category": "..."}
  ]
}
Use at most 5 bullets. Return an empty actions list when there are none.
Write the content in {language}."""

_VALID_PRIORITIES = frozenset({"low", "medium", "high"})


class _OpenAIClient:
    """Shared httpx client and error mapping."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenAI provider requires an API key")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Authorization": f"Bearer {self._api_key}"},
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _post(self, path: str, **kwargs: Any) -> dict[str, Any]:
        """POST and decode JSON, mapping failures to provider errors."""
        client = self._get_client()
        try:
            response = client.post(path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise ProviderTransientError(
                f"Request to {path} timed out: {e}", provider=self.name
            ) from e
        except httpx.HTTPStatusError as e:
            raise error_for_status(
                e.response.status_code, e.response.reason_phrase, provider=self.name
            ) from e
        except httpx.TransportError as e:
            raise ProviderTransientError(
                f"Cannot reach {self._base_url}: {e}", provider=self.name
            ) from e
        except ValueError as e:
            raise ProviderTransientError(
                f"Invalid JSON from {path}: {e}", provider=self.name
            ) from e


class OpenAITranscriptionProvider(_OpenAIClient):
    """Whisper transcription over HTTP."""

    def __init__(self, *, media_root: Path | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("model", "whisper-1")
        super().__init__(**kwargs)
        self._media_root = media_root

    def process(self, payload: TranscribePayload) -> TranscriptionResult:
        path = Path(payload.media_path).expanduser()
        if not path.is_absolute() and self._media_root is not None:
            path = self._media_root / path
        if not path.is_file():
            raise ProviderTerminalError(
                f"Media file not found: {payload.media_path}", provider=self.name
            )

        data = {"model": payload.model or self._model, "response_format": "json"}
        if payload.language:
            data["language"] = payload.language

        with path.open("rb") as media:
            body = self._post(
                "/audio/transcriptions",
                data=data,
                files={"file": (path.name, media)},
            )

        text = body.get("text")
        if not isinstance(text, str):
            raise ProviderTransientError(
                "Transcription response has no text", provider=self.name
            )
        return TranscriptionResult(
            text=text,
            language=body.get("language") or payload.language,
            metadata={"provider": self.name, "model": data["model"]},
        )


class OpenAISummarizationProvider(_OpenAIClient):
    """Chat-completion summarization returning structured JSON."""

    def __init__(self, *, default_language: str = "English", **kwargs: Any) -> None:
        kwargs.setdefault("model", "gpt-4o-mini")
        super().__init__(**kwargs)
        self._default_language = default_language

    def process(self, payload: SummarizePayload) -> SummaryResult:
        model = payload.model or self._model
        language = payload.language or self._default_language
        body = self._post(
            "/chat/completions",
            json={
                "model": model,
                "messages": [
                    {
                        "role": "system",
                        "content": SUMMARY_SYSTEM_PROMPT.replace(
                            "{language}", language
                        ),
                    },
                    {"role": "user", "content": payload.transcript},
                ],
                "temperature": 0.3,
                "max_tokens": 1000,
                "response_format": {"type": "json_object"},
            },
        )
        try:
            content = body["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderTransientError(
                f"Unusable summarization response: {e}", provider=self.name
            ) from e

        tl_dr = parsed.get("tl_dr") or parsed.get("tlDr")
        if not isinstance(tl_dr, str) or not tl_dr.strip():
            raise ProviderTransientError(
                "Summarization response has no tl_dr", provider=self.name
            )

        now = utcnow()
        actions = []
        for index, raw in enumerate(parsed.get("actions") or []):
            if not isinstance(raw, dict) or not raw.get("text"):
                logger.debug("Skipping malformed action item: %r", raw)
                continue
            priority = raw.get("priority")
            actions.append(
                ActionItem(
                    text=str(raw["text"]),
                    priority=priority if priority in _VALID_PRIORITIES else "medium",
                    category=raw.get("category"),
                    due_suggested=to_iso(now + timedelta(days=3 * (index + 1))),
                )
            )

        usage = body.get("usage") or {}
        return SummaryResult(
            tl_dr=tl_dr,
            bullets=[str(b) for b in parsed.get("bullets") or []],
            action_items=actions,
            metadata={
                "provider": self.name,
                "model": model,
                "input_tokens": usage.get("prompt_tokens"),
                "output_tokens": usage.get("completion_tokens"),
            },
        )
