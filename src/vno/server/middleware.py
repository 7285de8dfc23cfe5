"""Request middleware for the admin server.

Applied outermost first:
- correlation_id_middleware: reads or assigns ``X-Request-ID`` and puts it
  in the logging context
- error_middleware: turns unexpected exceptions into an opaque 500
- shutdown_middleware: answers 503 once graceful shutdown has begun
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Awaitable, Callable

from aiohttp import web

from vno.logging.context import correlation_context
from vno.server.api.errors import (
    NOT_FOUND,
    SHUTTING_DOWN,
    api_error,
    internal_error,
)

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

REQUEST_ID_HEADER = "X-Request-ID"

# Accepted incoming request ids; anything else is replaced
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _request_id(request: web.Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return uuid.uuid4().hex


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Tag the request and its log records with a correlation id."""
    correlation_id = _request_id(request)
    request["correlation_id"] = correlation_id
    with correlation_context(correlation_id):
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers[REQUEST_ID_HEADER] = correlation_id
            raise
    response.headers[REQUEST_ID_HEADER] = correlation_id
    return response


@web.middleware
async def error_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Log unexpected exceptions and answer with INTERNAL_ERROR.

    Unknown routes get the JSON error envelope instead of an HTML 404.
    """
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return api_error(f"No route for {request.path}", code=NOT_FOUND, status=404)
    except web.HTTPException:
        raise
    except Exception:
        correlation_id = request.get("correlation_id")
        logger.exception(
            "Unhandled error for %s %s [correlation_id=%s]",
            request.method,
            request.path,
            correlation_id,
        )
        return internal_error(correlation_id)


@web.middleware
async def shutdown_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Refuse new API work during shutdown. /health reports it instead."""
    lifecycle = request.app.get("lifecycle")
    if (
        lifecycle is not None
        and lifecycle.is_shutting_down
        and request.path != "/health"
    ):
        return api_error(
            "Service is shutting down", code=SHUTTING_DOWN, status=503
        )
    return await handler(request)
