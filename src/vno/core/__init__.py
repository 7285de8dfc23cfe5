"""Core utilities shared across packages."""

from vno.core.datetime_utils import (
    from_iso,
    parse_duration,
    to_iso,
    utcnow,
    utcnow_iso,
)
from vno.core.validation import is_valid_uuid

__all__ = [
    "from_iso",
    "is_valid_uuid",
    "parse_duration",
    "to_iso",
    "utcnow",
    "utcnow_iso",
]
