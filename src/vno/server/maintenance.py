"""Periodic queue maintenance for the admin server.

Runs retention cleanup and stale-job recovery on a fixed interval, with
the first run shortly after startup. The work itself is synchronous
database access, so it runs in a thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from vno.core.datetime_utils import utcnow
from vno.jobs.maintenance import MaintenanceResult

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_INTERVAL_SECONDS = 900.0

# Delay before first maintenance run after startup
STARTUP_DELAY_SECONDS = 60.0

# Consecutive failures before the task reports unhealthy
_UNHEALTHY_THRESHOLD = 3


class MaintenanceTask:
    """Background maintenance loop.

    Usage:
        task = MaintenanceTask(services.run_maintenance)
        handle = asyncio.create_task(task.run())
        # ... later ...
        task.stop()
    """

    def __init__(
        self,
        run_once: Callable[[], MaintenanceResult],
        *,
        interval_seconds: float = DEFAULT_MAINTENANCE_INTERVAL_SECONDS,
        startup_delay_seconds: float = STARTUP_DELAY_SECONDS,
    ) -> None:
        """Initialize the maintenance task.

        Args:
            run_once: Blocking function performing one maintenance pass.
            interval_seconds: Seconds between runs.
            startup_delay_seconds: Seconds to wait before the first run.
        """
        self._run_once = run_once
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._stop_event = asyncio.Event()
        self._last_run: datetime | None = None
        self._last_result: MaintenanceResult | None = None
        self._running = False
        self._consecutive_failures = 0

    async def run(self) -> None:
        """Run until stop() is called. Meant to be wrapped in a task."""
        if self._running:
            logger.warning("Maintenance task already running")
            return

        self._running = True
        logger.info(
            "Maintenance task started (first run in %.0fs, interval %.0fs)",
            self.startup_delay_seconds,
            self.interval_seconds,
        )
        try:
            if await self._wait(self.startup_delay_seconds):
                return
            while not self._stop_event.is_set():
                await self.run_now()
                if await self._wait(self.interval_seconds):
                    break
        finally:
            self._running = False
            logger.info("Maintenance task stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_now(self) -> MaintenanceResult | None:
        """Perform one pass. Failures are logged, not raised."""
        started = utcnow()
        try:
            result = await asyncio.to_thread(self._run_once)
        except Exception:
            self._consecutive_failures += 1
            logger.exception(
                "Maintenance run failed (%d consecutive)", self._consecutive_failures
            )
            return None
        self._consecutive_failures = 0
        self._last_run = started
        self._last_result = result
        logger.debug("Maintenance run finished: %s", result.to_dict())
        return result

    def stop(self) -> None:
        """Signal the loop to stop."""
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_healthy(self) -> bool:
        """False after several consecutive failed runs."""
        return self._consecutive_failures < _UNHEALTHY_THRESHOLD

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    @property
    def last_result(self) -> MaintenanceResult | None:
        return self._last_result
