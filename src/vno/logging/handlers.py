"""JSON lines formatter for machine-readable logs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

# Ids injected by WorkerContextFilter; dropped from output while unset
CONTEXT_FIELDS = ("worker_id", "job_id", "note_id", "correlation_id")

# Attributes every LogRecord has. Anything else came from extra= or a filter.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime", "worker_tag"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Non-standard attributes of a record, minus unset context ids."""
    context: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        if key in CONTEXT_FIELDS and not value:
            continue
        context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Every entry carries timestamp (UTC), level and message. ``logger``,
    ``context`` and ``exception`` appear only when there is something to
    put in them. Values json can't encode are written with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.name != "root":
            entry["logger"] = record.name
        context = record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)
