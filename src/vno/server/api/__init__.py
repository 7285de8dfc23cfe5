"""Admin API routes.

The queue routes are registered under both ``/queues`` (the operational
surface) and ``/api/v1/queues`` (versioned). Both prefixes resolve to the
same handler.
"""

from pathlib import Path

from aiohttp import web

from vno.server.api.queues import get_queue_routes

__all__ = [
    "QUEUE_PREFIXES",
    "setup_api_routes",
]

QUEUE_PREFIXES = ("/queues", "/api/v1/queues")


def setup_api_routes(app: web.Application) -> None:
    """Register all API routes with the application."""
    for prefix in QUEUE_PREFIXES:
        for method, suffix, handler in get_queue_routes():
            app.router.add_route(method, f"{prefix}{suffix}", handler)

    app.router.add_get("/api/openapi.yaml", _openapi_handler)
    app.router.add_get("/api/v1/openapi.yaml", _openapi_handler)


_OPENAPI_PATH = Path(__file__).parent / "openapi.yaml"
_OPENAPI_TEXT = _OPENAPI_PATH.read_text()


async def _openapi_handler(request: web.Request) -> web.Response:
    """Serve the bundled OpenAPI specification."""
    return web.Response(text=_OPENAPI_TEXT, content_type="text/yaml")
