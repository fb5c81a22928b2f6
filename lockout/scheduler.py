"""
Decay Scheduler

Runs the engine's decay sweep on a fixed period in a background thread.
Stopping sets an event that both wakes the sleeping loop and is polled by the
sweep between profiles, so shutdown never waits for a full pass.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


logger = logging.getLogger(__name__)

SweepFn = Callable[[Callable[[], bool]], int]


class DecayScheduler:
    """Cancellable periodic task around ``sweep(should_stop)``."""

    def __init__(
        self,
        sweep: SweepFn,
        interval_seconds: float = 60.0,
        name: str = "risk-decay",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
        logger.info(f"Decay scheduler started (interval={self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Decay scheduler did not stop within timeout")
            else:
                logger.info("Decay scheduler stopped")

    def _run(self) -> None:
        # Event.wait returns True once stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            try:
                visited = self.sweep(self._stop_event.is_set)
                logger.debug(f"Decay sweep visited {visited} profiles")
            except Exception:
                logger.exception("Decay sweep failed")
