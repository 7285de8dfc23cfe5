"""CLI serve command.

Runs the admin HTTP server (queue stats and controls, health endpoint)
as a long-lived process, optionally with the worker pool embedded.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import sys
from dataclasses import replace

import click

from vno.cli import get_cli_config, get_services
from vno.cli.exit_codes import ExitCode
from vno.cli.output import error_exit
from vno.config.models import ServerConfig
from vno.services import Services

logger = logging.getLogger(__name__)


async def run_server(
    services: Services,
    server: ServerConfig,
    *,
    auth_token: str | None,
    with_workers: bool = False,
) -> int:
    """Run the admin server until SIGTERM/SIGINT.

    Returns:
        Exit code (0 for clean shutdown, non-zero for errors).
    """
    from aiohttp import web

    from vno.server.app import create_app
    from vno.server.lifecycle import ServerLifecycle
    from vno.server.signals import remove_signal_handlers, setup_signal_handlers

    lifecycle = ServerLifecycle(shutdown_timeout=server.shutdown_timeout)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    setup_signal_handlers(loop, lifecycle, shutdown_event)

    worker_pool = services.build_worker_pool() if with_workers else None
    app = create_app(
        services, auth_token, lifecycle=lifecycle, worker_pool=worker_pool
    )

    runner = web.AppRunner(app)
    await runner.setup()
    try:
        site = web.TCPSite(runner, server.bind, server.port)
        await site.start()

        logger.info(
            "VNO admin server started on http://%s:%d (PID %d)",
            server.bind,
            server.port,
            os.getpid(),
        )
        if worker_pool is not None:
            logger.info("Running %d embedded worker(s)", len(worker_pool.workers))
        logger.info("Press Ctrl+C or send SIGTERM to stop")

        await shutdown_event.wait()
        logger.info(
            "Shutdown initiated, waiting up to %.1fs for cleanup",
            server.shutdown_timeout,
        )
        # Brief pause for in-flight requests
        await asyncio.sleep(0.5)

    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            logger.error("Port %d is already in use", server.port)
        elif e.errno == errno.EADDRNOTAVAIL:
            logger.error("Cannot bind to address %s", server.bind)
        else:
            logger.error("Server error: %s", e)
        return ExitCode.OPERATION_FAILED
    finally:
        remove_signal_handlers(loop)
        await runner.cleanup()
        logger.info("VNO admin server stopped")

    return ExitCode.SUCCESS


@click.command("serve")
@click.option(
    "--bind",
    type=str,
    default=None,
    help="Address to bind to (default: 127.0.0.1).",
)
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65535),
    default=None,
    help="Port to bind to (default: 8340).",
)
@click.option(
    "--with-workers",
    is_flag=True,
    help="Run the worker pool inside the server process.",
)
@click.option(
    "--memory",
    is_flag=True,
    help="Keep notes and jobs in memory (development only).",
)
@click.option(
    "--insecure",
    is_flag=True,
    help="Allow starting without an admin token.",
)
@click.pass_context
def serve_command(
    ctx: click.Context,
    bind: str | None,
    port: int | None,
    with_workers: bool,
    memory: bool,
    insecure: bool,
) -> None:
    """Run the admin HTTP server.

    Serves queue statistics and controls under /queues and a health check
    at /health. Handles graceful shutdown on SIGTERM or SIGINT.

    An admin token (VNO_AUTH_TOKEN or server.auth_token) is required
    unless --insecure is given.

    \b
    Examples:
        vno serve                      # Start with defaults
        vno serve --port 9000          # Custom port
        vno serve --with-workers       # Also process jobs
        vno --log-format json serve    # JSON logging for systemd
    """
    config = get_cli_config(ctx)
    server = replace(
        config.server,
        bind=bind if bind is not None else config.server.bind,
        port=port if port is not None else config.server.port,
    )
    auth_token = server.auth_token if server.auth_token else None

    if auth_token is None and not insecure:
        error_exit(
            "No admin token configured. Set VNO_AUTH_TOKEN or pass --insecure.",
            ExitCode.CONFIG_ERROR,
        )
    if auth_token is None:
        logger.warning("Starting without authentication (--insecure)")
    if server.port < 1024:
        logger.warning("Port %d is privileged and may require root", server.port)

    services = get_services(ctx, memory=memory)
    logger.info(
        "Starting VNO admin server (bind=%s, port=%d, timeout=%.1fs)",
        server.bind,
        server.port,
        server.shutdown_timeout,
    )
    try:
        exit_code = asyncio.run(
            run_server(
                services, server, auth_token=auth_token, with_workers=with_workers
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted before server started")
        sys.exit(ExitCode.INTERRUPTED)
    sys.exit(exit_code)
