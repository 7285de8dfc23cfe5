"""Input validation helpers."""

import uuid


def is_valid_uuid(value: str) -> bool:
    """Return True if value is a canonical UUID string."""
    try:
        return str(uuid.UUID(value)) == value.lower()
    except (ValueError, AttributeError, TypeError):
        return False
