"""HTTP application for the admin server.

This module provides the aiohttp Application with the health endpoint,
the queue control API, and the background tasks that run alongside it
(periodic maintenance and an optional embedded worker pool).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field

from aiohttp import web

from vno import __version__
from vno.core.datetime_utils import to_iso
from vno.db.connection import check_database_connectivity
from vno.jobs.worker import WorkerPool
from vno.server.api import setup_api_routes
from vno.server.auth import create_auth_middleware, is_auth_enabled
from vno.server.lifecycle import ServerLifecycle
from vno.server.maintenance import MaintenanceTask
from vno.server.middleware import (
    correlation_id_middleware,
    error_middleware,
    shutdown_middleware,
)
from vno.services import Services

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5.0  # seconds


@dataclass
class HealthStatus:
    """Health check response payload."""

    status: str
    """Overall status: 'healthy', 'degraded', or 'unhealthy'."""

    database: str
    """'connected', 'disconnected', or 'memory' for in-memory storage."""

    uptime_seconds: float
    version: str
    shutting_down: bool = False

    # Queue depth summary
    jobs_waiting: int = 0
    jobs_active: int = 0
    jobs_delayed: int = 0
    paused_queues: list[str] = field(default_factory=list)
    workers: int = 0

    # Background maintenance; None when the task does not run in this process
    maintenance_healthy: bool | None = None
    maintenance_last_run: str | None = None
    maintenance_last_result: dict | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


async def check_database_health(services: Services) -> str:
    """Check the database without blocking the event loop."""
    if services.pool is None:
        return "memory"
    try:
        connected = await asyncio.wait_for(
            asyncio.to_thread(check_database_connectivity, services.pool),
            timeout=HEALTH_CHECK_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "Database health check timed out after %.1fs", HEALTH_CHECK_TIMEOUT
        )
        connected = False
    return "connected" if connected else "disconnected"


def create_app(
    services: Services,
    auth_token: str | None = None,
    *,
    lifecycle: ServerLifecycle | None = None,
    worker_pool: WorkerPool | None = None,
    maintenance: bool = True,
) -> web.Application:
    """Create and configure the aiohttp Application.

    Args:
        services: Service container the handlers operate on.
        auth_token: Admin token. When set (non-blank), every route except
            /health requires it.
        lifecycle: Shared lifecycle; a fresh one is created when omitted.
        worker_pool: Workers to run inside the server process.
        maintenance: Start the periodic maintenance task.

    Returns:
        Configured aiohttp Application instance.
    """
    app = web.Application(
        middlewares=[correlation_id_middleware, error_middleware, shutdown_middleware]
    )
    token = auth_token or ""
    if is_auth_enabled(token):
        app.middlewares.append(create_auth_middleware(token))
        logger.info("Authentication enabled for admin API")
    else:
        logger.warning("Authentication is disabled; the admin API is open")

    app["services"] = services
    app["lifecycle"] = lifecycle or ServerLifecycle(
        shutdown_timeout=services.config.server.shutdown_timeout
    )
    app["worker_pool"] = worker_pool
    app["maintenance_task"] = None
    app["maintenance_task_handle"] = None

    app.router.add_get("/health", health_handler)
    setup_api_routes(app)

    if maintenance:
        app.on_startup.append(_start_maintenance_task)
        app.on_cleanup.append(_stop_maintenance_task)
    if worker_pool is not None:
        app.on_startup.append(_start_worker_pool)
        app.on_cleanup.append(_stop_worker_pool)

    return app


async def _start_maintenance_task(app: web.Application) -> None:
    """Start the background maintenance task."""
    services: Services = app["services"]
    server_config = services.config.server
    task = MaintenanceTask(
        services.run_maintenance,
        interval_seconds=server_config.maintenance_interval,
        startup_delay_seconds=server_config.maintenance_initial_delay,
    )
    app["maintenance_task"] = task
    app["maintenance_task_handle"] = asyncio.create_task(task.run())
    logger.debug("Started background maintenance task")


async def _stop_maintenance_task(app: web.Application) -> None:
    """Stop the background maintenance task."""
    task: MaintenanceTask | None = app.get("maintenance_task")
    handle: asyncio.Task | None = app.get("maintenance_task_handle")
    if task is not None:
        task.stop()
    if handle is not None and not handle.done():
        try:
            await asyncio.wait_for(handle, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Maintenance task did not stop in time, cancelling")
            handle.cancel()
            try:
                await handle
            except asyncio.CancelledError:
                pass
    logger.debug("Stopped background maintenance task")


async def _start_worker_pool(app: web.Application) -> None:
    pool: WorkerPool = app["worker_pool"]
    pool.start()


async def _stop_worker_pool(app: web.Application) -> None:
    pool: WorkerPool = app["worker_pool"]
    lifecycle: ServerLifecycle = app["lifecycle"]
    remaining = lifecycle.shutdown_state.seconds_remaining
    timeout = remaining if remaining is not None else lifecycle.shutdown_timeout
    if not await asyncio.to_thread(pool.stop, timeout):
        logger.warning("Abandoning in-flight jobs; stale recovery will retry them")


async def health_handler(request: web.Request) -> web.Response:
    """Handle GET /health requests.

    Returns 200 when healthy, 503 when the database is unreachable or the
    server is shutting down.
    """
    services: Services = request.app["services"]
    lifecycle: ServerLifecycle = request.app["lifecycle"]
    worker_pool: WorkerPool | None = request.app.get("worker_pool")

    database = await check_database_health(services)
    shutting_down = lifecycle.is_shutting_down

    health = HealthStatus(
        status="healthy",
        database=database,
        uptime_seconds=round(lifecycle.uptime_seconds, 1),
        version=__version__,
        shutting_down=shutting_down,
        workers=len(worker_pool.workers) if worker_pool is not None else 0,
    )

    maintenance: MaintenanceTask | None = request.app.get("maintenance_task")
    if maintenance is not None:
        health.maintenance_healthy = maintenance.is_healthy
        if maintenance.last_run is not None:
            health.maintenance_last_run = to_iso(maintenance.last_run)
        if maintenance.last_result is not None:
            health.maintenance_last_result = maintenance.last_result.to_dict()

    if database != "disconnected":
        try:
            all_stats = await asyncio.to_thread(services.supervisor.get_all_stats)
        except Exception as e:
            logger.warning("Failed to get queue stats for health check: %s", e)
        else:
            for name, stats in all_stats.stats.items():
                health.jobs_waiting += stats.waiting
                health.jobs_active += stats.active
                health.jobs_delayed += stats.delayed
                if stats.paused:
                    health.paused_queues.append(name)

    if shutting_down:
        health.status = "unhealthy"
    elif database == "disconnected":
        health.status = "degraded"

    http_status = 200 if health.status == "healthy" else 503
    return web.json_response(health.to_dict(), status=http_status)
