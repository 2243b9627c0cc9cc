"""
FluxGuard - Fixed-rate tick scheduler.

Runs the detection engine on its own thread, never on a request worker.
Ticks are scheduled against absolute monotonic deadlines so one slow tick
does not shift the cadence; if the thread falls more than a full interval
behind, missed ticks are skipped rather than run back to back.
"""

import logging
import threading
import time
from typing import Callable, Optional

from fluxguard.core.models import TickSummary

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0


class TickScheduler:
    """
    Calls tick_fn every interval seconds until stop(). stop() cancels future
    ticks and waits for an in-flight tick to finish.
    """

    def __init__(
        self,
        tick_fn: Callable[[], TickSummary],
        interval: float = DEFAULT_TICK_INTERVAL,
        on_summary: Optional[Callable[[TickSummary], None]] = None,
    ) -> None:
        self._tick_fn = tick_fn
        self._interval = max(0.01, float(interval))
        self._on_summary = on_summary
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="fluxguard-tick",
        )
        self._thread.start()
        logger.info("[TICK] Scheduler started (interval=%.2fs)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("[TICK] Tick thread did not stop within %.1fs", timeout)
            self._thread = None
            logger.info("[TICK] Scheduler stopped")

    def _run_one(self) -> None:
        started = time.monotonic()
        try:
            summary = self._tick_fn()
        except Exception as e:
            logger.exception("[TICK] Detection tick failed: %s", e)
            return
        elapsed = time.monotonic() - started
        if elapsed > self._interval:
            logger.warning("[TICK] Tick %d took %.3fs (> %.2fs interval)", summary.tick, elapsed, self._interval)
        if self._on_summary is not None:
            try:
                self._on_summary(summary)
            except Exception as e:
                logger.exception("[TICK] Summary callback failed: %s", e)

    def _run(self) -> None:
        next_deadline = time.monotonic() + self._interval
        while not self._stop_event.wait(max(0.0, next_deadline - time.monotonic())):
            self._run_one()
            next_deadline += self._interval
            now = time.monotonic()
            if next_deadline < now:
                skipped = int((now - next_deadline) // self._interval) + 1
                logger.debug("[TICK] Behind schedule; skipping %d tick(s)", skipped)
                next_deadline += skipped * self._interval
