"""Offline providers for development and tests.

Both providers are deterministic: the same input always yields the same
output, apart from suggested due dates which are relative to now.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import timedelta
from pathlib import Path

from vno.core.datetime_utils import to_iso, utcnow
from vno.db.types import ActionItem
from vno.jobs.payloads import SummarizePayload, TranscribePayload
from vno.providers.base import ProviderTerminalError, SummaryResult, TranscriptionResult

logger = logging.getLogger(__name__)

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_ACTION_RE = re.compile(
    r"\b(need to|needs to|should|must|have to|todo|follow up)\b", re.IGNORECASE
)
_HIGH_PRIORITY_RE = re.compile(r"\b(urgent|asap|today|must)\b", re.IGNORECASE)

MAX_BULLETS = 5


class MockTranscriptionProvider:
    """Transcribes by describing the media file instead of listening to it."""

    name = "mock"

    def __init__(
        self,
        *,
        media_root: Path | None = None,
        delay: float = 0.0,
        require_media: bool = True,
    ) -> None:
        self._media_root = media_root
        self._delay = delay
        self._require_media = require_media

    def _resolve(self, media_path: str) -> Path:
        path = Path(media_path).expanduser()
        if not path.is_absolute() and self._media_root is not None:
            path = self._media_root / path
        return path

    def process(self, payload: TranscribePayload) -> TranscriptionResult:
        path = self._resolve(payload.media_path)
        if self._require_media and not path.is_file():
            raise ProviderTerminalError(
                f"Media file not found: {payload.media_path}", provider=self.name
            )
        if self._delay:
            time.sleep(self._delay)

        size = path.stat().st_size if path.is_file() else 0
        text = (
            f"This is a mock transcript of {path.name}. "
            "We reviewed the project status and agreed on next steps. "
            "We need to finish the technical documentation by Friday. "
            "Someone should follow up with the design team."
        )
        return TranscriptionResult(
            text=text,
            language=payload.language or "en",
            confidence=0.9,
            metadata={"provider": self.name, "bytes": size},
        )


class MockSummarizationProvider:
    """Summarizes by picking sentences out of the transcript."""

    name = "mock"

    def __init__(self, *, delay: float = 0.0) -> None:
        self._delay = delay

    def process(self, payload: SummarizePayload) -> SummaryResult:
        if self._delay:
            time.sleep(self._delay)

        parts = _SENTENCE_RE.split(payload.transcript.strip())
        sentences = [s.strip() for s in parts if s.strip()]
        now = utcnow()
        actions = []
        for sentence in sentences:
            if not _ACTION_RE.search(sentence):
                continue
            priority = "high" if _HIGH_PRIORITY_RE.search(sentence) else "medium"
            actions.append(
                ActionItem(
                    text=sentence.rstrip("."),
                    priority=priority,
                    category="follow-up",
                    due_suggested=to_iso(now + timedelta(days=3 * (len(actions) + 1))),
                )
            )

        return SummaryResult(
            tl_dr=sentences[0],
            bullets=sentences[1 : MAX_BULLETS + 1],
            action_items=actions,
            metadata={
                "provider": self.name,
                "model": payload.model or "mock-v1",
                "input_tokens": len(payload.transcript) // 4,
            },
        )
