"""Root logger setup driven by LoggingConfig."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from vno.logging.context import WorkerContextFilter
from vno.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from vno.config.models import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(worker_tag)s%(name)s: %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Third-party loggers held at WARNING unless running at debug level
NOISY_LOGGERS = ("aiohttp.access", "httpx", "httpcore")


def _formatter(name: str) -> logging.Formatter:
    if name.lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)


def _file_handler(config: LoggingConfig) -> logging.Handler | None:
    """Rotating handler for config.file, or None if it can't be opened."""
    path = Path(config.file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Warning: cannot write log file {path}: {e}", file=sys.stderr)
        return None


def configure_logging(config: LoggingConfig) -> None:
    """Point the root logger at the configured destinations.

    Any handlers already on the root logger are replaced, so calling this
    twice does not duplicate output. Logging goes to stderr when no file
    is configured, when the file can't be opened, or when
    ``include_stderr`` is set.
    """
    level = getattr(logging, config.level.upper())

    handlers: list[logging.Handler] = []
    if config.file:
        file_handler = _file_handler(config)
        if file_handler is not None:
            handlers.append(file_handler)
    if config.include_stderr or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = _formatter(config.format)
    context_filter = WorkerContextFilter()
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
