"""Standardized API error response helper.

Every error response has the same shape::

    {"error": {"code": "VALIDATION_ERROR", "message": "..."}}

``code`` is machine-readable and stable; ``message`` is for humans and
never carries provider or database detail.

Usage:
    from vno.server.api.errors import api_error, VALIDATION_ERROR

    return api_error("Invalid queue name", code=VALIDATION_ERROR)
"""

from __future__ import annotations

from typing import Any

from aiohttp import web

# --- Error code constants ---

VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
NOT_FOUND = "NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"
SHUTTING_DOWN = "SHUTTING_DOWN"

INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(message: str, *, code: str, details: Any = None) -> dict[str, Any]:
    """Build the error envelope without wrapping it in a response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error}


def api_error(
    message: str,
    *,
    code: str,
    status: int = 400,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> web.Response:
    """Create a standardized JSON error response.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (use constants from this module).
        status: HTTP status code (default 400).
        details: Optional additional context (string, list, or dict).
        headers: Extra response headers.

    Returns:
        aiohttp JSON response with ``{"error": {"code", "message"}}`` body.
    """
    return web.json_response(
        error_body(message, code=code, details=details),
        status=status,
        headers=headers,
    )


def internal_error(correlation_id: str | None = None) -> web.Response:
    """500 response that reveals nothing but the correlation id."""
    details = {"correlation_id": correlation_id} if correlation_id else None
    return api_error(
        INTERNAL_ERROR_MESSAGE, code=INTERNAL_ERROR, status=500, details=details
    )
