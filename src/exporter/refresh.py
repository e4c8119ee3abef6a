"""
Refresh Loop

Repeats scrape cycles on a fixed interval in a background thread for the
lifetime of the process.
"""

import logging
import threading
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """States of the refresh loop."""

    IDLE = "idle"
    SCRAPING = "scraping"
    SLEEPING = "sleeping"


class RefreshLoop:
    """
    Runs ScrapeCoordinator.scrape_once() every ``interval_seconds``.

    The loop never exits on database errors; it only stops when stop() is
    called. The first cycle runs immediately so metrics are available right
    after startup.
    """

    def __init__(self, coordinator, interval_seconds: float):
        """
        Initialize the refresh loop.

        Args:
            coordinator: ScrapeCoordinator to drive
            interval_seconds: Sleep between the end of one cycle and the next

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.state = LoopState.IDLE
        self.cycles = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the loop in a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Refresh loop already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="RefreshLoop")
        self._thread.start()
        logger.info(f"Started refresh loop (interval={self.interval_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the loop, interrupting its sleep.

        Args:
            timeout: Seconds to wait for the loop thread to finish
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            self._thread = None
            logger.info("Stopped refresh loop")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """Run cycles until stop() is called."""
        while not self._stop_event.is_set():
            self.state = LoopState.SCRAPING
            self._run_cycle()
            self.cycles += 1

            self.state = LoopState.SLEEPING
            if self._stop_event.wait(self.interval_seconds):
                break

        self.state = LoopState.IDLE

    def _run_cycle(self) -> None:
        failures_before = self.coordinator.consecutive_failures
        try:
            result = self.coordinator.scrape_once()
        except Exception:
            # scrape_once() absorbs errors; keep looping if that ever changes
            logger.error("Scrape cycle raised unexpectedly", exc_info=True)
            return

        if result.success:
            if failures_before:
                logger.info(f"Scrape recovered after {failures_before} failed cycles")
        elif self.coordinator.consecutive_failures == self.coordinator.failure_threshold:
            logger.warning(
                "Scrape failure threshold reached, serving no row counts "
                "until discovery succeeds again"
            )
