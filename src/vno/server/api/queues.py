"""API handlers for queue operations.

Endpoints (mounted under ``/queues`` and ``/api/v1/queues``):
    GET  /queues                      - Stats for every queue
    GET  /queues/{queue_name}         - Stats for one queue
    POST /queues/{queue_name}/pause   - Stop dequeuing
    POST /queues/{queue_name}/resume  - Restore dequeuing
    POST /queues/{queue_name}/clean   - Remove old completed/failed jobs

Supervisor calls touch the database, so they run in a thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta

from aiohttp import web

from vno.core.datetime_utils import parse_duration
from vno.jobs.exceptions import QueueValidationError, SupervisorError
from vno.jobs.supervisor import DEFAULT_CLEAN_AGE, QueueSupervisor
from vno.server.api.errors import VALIDATION_ERROR, api_error, internal_error

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _supervisor(request: web.Request) -> QueueSupervisor:
    return request.app["services"].supervisor


async def _call(request: web.Request, func: Callable[[], object]) -> web.Response:
    """Run a supervisor call and map its errors to API responses."""
    try:
        result = await asyncio.to_thread(func)
    except QueueValidationError as e:
        return api_error(str(e), code=VALIDATION_ERROR)
    except SupervisorError as e:
        return internal_error(e.correlation_id)
    return web.json_response(result.to_dict())  # type: ignore[attr-defined]


async def api_all_stats_handler(request: web.Request) -> web.Response:
    """Handle GET /queues."""
    return await _call(request, _supervisor(request).get_all_stats)


async def api_queue_stats_handler(request: web.Request) -> web.Response:
    """Handle GET /queues/{queue_name}."""
    name = request.match_info["queue_name"]
    supervisor = _supervisor(request)
    return await _call(request, lambda: supervisor.get_stats(name))


async def api_pause_handler(request: web.Request) -> web.Response:
    """Handle POST /queues/{queue_name}/pause."""
    name = request.match_info["queue_name"]
    supervisor = _supervisor(request)
    return await _call(request, lambda: supervisor.pause(name))


async def api_resume_handler(request: web.Request) -> web.Response:
    """Handle POST /queues/{queue_name}/resume."""
    name = request.match_info["queue_name"]
    supervisor = _supervisor(request)
    return await _call(request, lambda: supervisor.resume(name))


def _parse_older_than(value: str | None) -> timedelta:
    if value is None or value == "":
        return DEFAULT_CLEAN_AGE
    if value.isdigit():
        return timedelta(seconds=int(value))
    return parse_duration(value)


async def api_clean_handler(request: web.Request) -> web.Response:
    """Handle POST /queues/{queue_name}/clean.

    Query parameters:
        older_than: Age cutoff such as ``24h`` or ``3600`` (default 24h).
    """
    name = request.match_info["queue_name"]
    try:
        older_than = _parse_older_than(request.query.get("older_than"))
    except ValueError as e:
        return api_error(f"Invalid older_than value: {e}", code=VALIDATION_ERROR)
    supervisor = _supervisor(request)
    return await _call(request, lambda: supervisor.clean(name, older_than))


def get_queue_routes() -> list[tuple[str, str, Handler]]:
    """Return (method, path suffix, handler) for every queue route."""
    return [
        ("GET", "", api_all_stats_handler),
        ("GET", "/{queue_name}", api_queue_stats_handler),
        ("POST", "/{queue_name}/pause", api_pause_handler),
        ("POST", "/{queue_name}/resume", api_resume_handler),
        ("POST", "/{queue_name}/clean", api_clean_handler),
    ]
