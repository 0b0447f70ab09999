"""Connection monitor - health checks and reconnection scans."""

import logging
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from usbprint.manager import PrinterManager

logger = logging.getLogger(__name__)


class ConnectionMonitor:
    """Background loop keeping the manager's connection state accurate.

    One thread alternates between two duties depending on state:
    1. While connected: health check every health_interval seconds
    2. While disconnected: reconnection scan every reconnect_interval seconds

    Queued host events are applied on every wake-up.
    """

    def __init__(
        self,
        manager: "PrinterManager",
        health_interval: float = 2.0,
        reconnect_interval: float = 3.0,
    ):
        """Initialize the monitor.

        Args:
            manager: Manager whose state is monitored.
            health_interval: Seconds between health checks.
            reconnect_interval: Seconds between reconnection scans.
        """
        self.manager = manager
        self.health_interval = health_interval
        self.reconnect_interval = reconnect_interval
        self._wakeup = threading.Event()
        self._thread: threading.Thread | None = None
        self.running = False

    def start(self) -> None:
        """Start the monitor thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self.running = True
        self._thread = threading.Thread(target=self.run, name="usbprint-monitor", daemon=True)
        self._thread.start()
        logger.info("Connection monitoring started")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the monitor thread and wait for it to exit."""
        self.running = False
        self._wakeup.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None
        logger.info("Connection monitoring stopped")

    def wake(self) -> None:
        """Wake the loop early, e.g. when a host event is queued."""
        self._wakeup.set()

    def run_duty(self) -> float:
        """Run the health check or the reconnection scan, whichever applies.

        Returns:
            float: Seconds until the next duty is due.
        """
        if self.manager.is_connected():
            self.manager.check_health()
            return self.health_interval

        self.manager.reconnect()
        if self.manager.is_connected():
            return self.health_interval
        return self.reconnect_interval

    def tick(self) -> float:
        """Apply queued host events, then run one duty cycle.

        Returns:
            float: Seconds until the next cycle.
        """
        self.manager.process_events()
        return self.run_duty()

    def run(self) -> None:
        """Run the monitor loop until stop() is called."""
        next_duty = time.monotonic()
        while self.running:
            self._wakeup.clear()
            try:
                self.manager.process_events()
                now = time.monotonic()
                if now >= next_duty:
                    next_duty = now + self.run_duty()
            except Exception as e:
                logger.exception(f"Error in monitor loop: {e}")
                next_duty = time.monotonic() + self.reconnect_interval

            # Sleep until the next duty or until woken by a host event
            self._wakeup.wait(max(0.0, next_duty - time.monotonic()))
