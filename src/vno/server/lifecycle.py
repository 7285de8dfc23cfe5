"""Server lifecycle management.

Tracks uptime and coordinates graceful shutdown between the HTTP server,
the maintenance task and an embedded worker pool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from vno.core.datetime_utils import utcnow


@dataclass
class ShutdownState:
    """Tracks shutdown progress for graceful termination."""

    initiated: datetime | None = None
    """UTC timestamp when shutdown was initiated, None if not shutting down."""

    timeout_deadline: datetime | None = None
    """UTC timestamp after which remaining work is abandoned."""

    @property
    def is_shutting_down(self) -> bool:
        """Returns True if shutdown has been initiated."""
        return self.initiated is not None

    @property
    def is_timed_out(self) -> bool:
        """Returns True if shutdown timeout has been exceeded."""
        if self.timeout_deadline is None:
            return False
        return utcnow() >= self.timeout_deadline

    @property
    def seconds_remaining(self) -> float | None:
        """Seconds until the deadline, or None if not shutting down."""
        if self.timeout_deadline is None:
            return None
        return max(0.0, (self.timeout_deadline - utcnow()).total_seconds())


@dataclass
class ServerLifecycle:
    """Startup time and shutdown state of one server process."""

    shutdown_timeout: float = 30.0
    """Seconds to wait for graceful shutdown before abandoning work."""

    start_time: datetime = field(default_factory=utcnow)
    """UTC timestamp when the server started."""

    shutdown_state: ShutdownState = field(default_factory=ShutdownState)

    @property
    def uptime_seconds(self) -> float:
        """Returns seconds since startup."""
        return (utcnow() - self.start_time).total_seconds()

    @property
    def is_shutting_down(self) -> bool:
        """Returns True if shutdown has been initiated."""
        return self.shutdown_state.is_shutting_down

    def initiate_shutdown(self) -> None:
        """Begin graceful shutdown. Idempotent."""
        if self.shutdown_state.initiated is not None:
            return
        now = utcnow()
        self.shutdown_state.initiated = now
        self.shutdown_state.timeout_deadline = now + timedelta(
            seconds=self.shutdown_timeout
        )
