"""Fixed-interval driver for a RotationEngine.

Ticks run one after another on the calling thread. A tick that overruns the
interval delays the next one; ticks never overlap and none are queued.
"""

import logging
import threading
import time

from src.rotation.config import TICK_INTERVAL_SECONDS
from src.rotation.errors import SnapshotError

logger = logging.getLogger(__name__)


class TickScheduler:
    """Calls ``engine.tick()`` every ``interval`` seconds until stopped."""

    def __init__(self, engine, interval: float = TICK_INTERVAL_SECONDS,
                 stop_event: threading.Event = None):
        self.engine = engine
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.ticks = 0
        self.failures = 0

    def run_once(self) -> bool:
        """Run a single tick. Returns False if it failed."""
        self.ticks += 1
        try:
            result = self.engine.tick()
        except (SnapshotError, OSError) as exc:
            self.failures += 1
            logger.error("Tick %d failed, retrying next interval: %s", self.ticks, exc)
            return False

        logger.debug(
            "Tick %d: %d promoted, %d deleted, %d waiting, regenerated=%s",
            self.ticks, len(result.promoted), len(result.deleted),
            len(result.waited), result.regenerated,
        )
        return True

    def run(self, max_ticks: int = None):
        """Tick immediately, then once per interval until stopped."""
        logger.info("Rotating every %ss", self.interval)
        while not self.stop_event.is_set():
            started = time.monotonic()
            self.run_once()
            if max_ticks is not None and self.ticks >= max_ticks:
                break
            remaining = self.interval - (time.monotonic() - started)
            if remaining > 0:
                self.stop_event.wait(timeout=remaining)
        logger.info("Scheduler stopped after %d tick(s), %d failed",
                    self.ticks, self.failures)

    def stop(self):
        self.stop_event.set()
