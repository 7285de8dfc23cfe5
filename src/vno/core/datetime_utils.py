"""Datetime helpers.

All timestamps stored by VNO are ISO-8601 strings in UTC.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$", re.IGNORECASE)

_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return to_iso(utcnow())


def to_iso(value: datetime) -> str:
    """Convert a datetime to an ISO-8601 UTC string.

    Naive datetimes are assumed to already be in UTC. Microseconds are
    always included so stored timestamps compare correctly as text.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_duration(value: str) -> timedelta:
    """Parse a relative duration such as ``30s``, ``15m``, ``24h`` or ``7d``.

    Args:
        value: Duration string (number followed by s, m, h, d or w).

    Returns:
        Equivalent timedelta.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    match = _DURATION_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. 30m, 24h, 7d)")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})
