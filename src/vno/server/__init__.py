"""Admin server.

Exports:
    ServerLifecycle: Startup time and shutdown state
    ShutdownState: Shutdown progress for graceful termination
    HealthStatus: Response payload for the health endpoint
    create_app: Factory function to create the aiohttp Application
"""

from vno.server.app import HealthStatus, create_app
from vno.server.lifecycle import ServerLifecycle, ShutdownState

__all__ = [
    "HealthStatus",
    "ServerLifecycle",
    "ShutdownState",
    "create_app",
]
