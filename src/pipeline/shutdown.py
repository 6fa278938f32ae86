"""Graceful shutdown handler for the worker and the API process.

Handles both Windows (``signal.signal``) and Unix
(``loop.add_signal_handler``) signal registration with a reentrancy guard.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

logger = logging.getLogger(__name__)


class GracefulShutdown:
    """Sets an :class:`asyncio.Event` on SIGINT / SIGTERM.

    Usage::

        shutdown = GracefulShutdown()
        shutdown.install()
        await sweeper.run_forever(60, shutdown.stop_event)
    """

    def __init__(self) -> None:
        self.stop_event = asyncio.Event()
        self._handling = False  # reentrancy guard

    @property
    def should_stop(self) -> bool:
        """Whether a shutdown signal has been received."""
        return self.stop_event.is_set()

    def install(self) -> None:
        """Register signal handlers for SIGINT and SIGTERM.

        On Windows, uses ``signal.signal`` directly.
        On Unix, uses ``loop.add_signal_handler`` if a running event loop
        is available, falling back to ``signal.signal``.
        """
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)
        else:
            try:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, self._async_handler)
            except RuntimeError:
                # No running loop -- fall back to signal.signal
                signal.signal(signal.SIGINT, self._signal_handler)
                signal.signal(signal.SIGTERM, self._signal_handler)

    def request_stop(self) -> None:
        if self._handling:
            return
        self._handling = True
        logger.warning("Shutdown requested -- finishing in-flight work")
        self.stop_event.set()
        self._handling = False

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows / fallback)."""
        logger.info("Received signal %s", signum)
        self.request_stop()

    def _async_handler(self) -> None:
        """Async-compatible signal handler (Unix)."""
        self.request_stop()
