"""Signal handler setup for the admin server.

SIGTERM (from systemd) and SIGINT (Ctrl+C) start a graceful shutdown.
"""

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vno.server.lifecycle import ServerLifecycle

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def setup_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    lifecycle: "ServerLifecycle",
    shutdown_event: asyncio.Event,
) -> None:
    """Register SIGTERM/SIGINT handlers that begin graceful shutdown.

    Args:
        loop: The asyncio event loop to register handlers on.
        lifecycle: Lifecycle to mark as shutting down.
        shutdown_event: Event set when a signal arrives.
    """

    def handle_shutdown_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        lifecycle.initiate_shutdown()
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, handle_shutdown_signal, sig)
            logger.debug("Registered handler for %s", sig.name)
        except (ValueError, RuntimeError, NotImplementedError) as e:
            # ValueError: not in main thread; NotImplementedError: Windows
            logger.warning("Failed to register handler for %s: %s", sig.name, e)


def remove_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """Remove the handlers installed by setup_signal_handlers."""
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
            logger.debug("Removed handler for %s", sig.name)
        except (ValueError, RuntimeError, NotImplementedError):
            pass  # Handler may not have been registered
