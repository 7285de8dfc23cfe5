"""Shared-token authentication for the admin API.

Callers present the configured admin token either as a bearer token
(``Authorization: Bearer <token>``) or as the password of HTTP Basic
credentials (any username). ``/health`` stays open for load balancer
health checks.

Security note: this is minimal authentication suitable for localhost/LAN
use. Put a TLS-terminating reverse proxy in front for anything else.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from collections.abc import Awaitable, Callable

from aiohttp import web

from vno.server.api.errors import UNAUTHORIZED, api_error

logger = logging.getLogger(__name__)

RequestHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]

PUBLIC_PATHS = frozenset({"/health"})


def parse_basic_auth(auth_header: str | None) -> tuple[str, str] | None:
    """Parse an HTTP Basic Authorization header.

    Returns:
        (username, password), or None if the header is missing, malformed
        or not Basic auth.

    Example:
        >>> parse_basic_auth("Basic dXNlcjpwYXNzd29yZA==")
        ('user', 'password')
    """
    if not auth_header or not auth_header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(auth_header[6:], validate=True).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    username, password = decoded.split(":", 1)
    return username, password


def parse_bearer_token(auth_header: str | None) -> str | None:
    """Return the token of a Bearer Authorization header, or None."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def validate_token(provided: str, expected: str) -> bool:
    """Compare tokens in constant time."""
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def is_auth_enabled(token: str | None) -> bool:
    """True if token is set and not blank."""
    return token is not None and token.strip() != ""


def extract_token(auth_header: str | None) -> str | None:
    """Token from either a Bearer or a Basic Authorization header."""
    token = parse_bearer_token(auth_header)
    if token is not None:
        return token
    credentials = parse_basic_auth(auth_header)
    return credentials[1] if credentials is not None else None


def _unauthorized() -> web.Response:
    return api_error(
        "Authentication required",
        code=UNAUTHORIZED,
        status=401,
        headers={"WWW-Authenticate": 'Bearer realm="vno"'},
    )


def create_auth_middleware(auth_token: str):
    """Create middleware that requires the admin token on every route
    except ``PUBLIC_PATHS``."""

    @web.middleware
    async def auth_middleware(
        request: web.Request, handler: RequestHandler
    ) -> web.StreamResponse:
        if request.path in PUBLIC_PATHS:
            return await handler(request)

        provided = extract_token(request.headers.get("Authorization"))
        if provided is None or not validate_token(provided, auth_token):
            logger.debug("Rejected unauthenticated request to %s", request.path)
            return _unauthorized()
        return await handler(request)

    return auth_middleware
