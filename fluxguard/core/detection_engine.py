"""
FluxGuard - Per-source flood detection engine.

Once per tick, reads the attempt counters, turns them into per-source
deltas and runs a two-state machine per source: UNBLOCKED (absent from the
block registry) and BLOCKED (present). Two independent triggers block a
source: an absolute hard limit and an adaptive ceiling of mean + 2*stddev
over the source's recent deltas. A blocked source is released only after
COOLDOWN consecutive ticks under both ceilings.
"""

import logging
import threading
from typing import Any, Optional

from fluxguard.core.alerts import EventSink
from fluxguard.core.block_registry import BlockRegistry
from fluxguard.core.ledger import SourceLedger
from fluxguard.core.limits import LimitsConfig
from fluxguard.core.models import EventKind, FirewallEvent, TickSummary
from fluxguard.core.rolling_window import RollingWindow

logger = logging.getLogger(__name__)

# Consecutive clear ticks required before a blocked source is released
COOLDOWN = 3

# Adaptive ceiling is mean + SIGMA_FACTOR * stddev
SIGMA_FACTOR = 2.0


def _as_count(value: Any) -> Optional[int]:
    """Coerce a snapshot value to int; None if unusable."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DetectionEngine:
    """
    Block/unblock state machine over all sources ever observed.
    Rolling windows, previous snapshots and hysteresis counters are owned
    here and only mutated inside tick(). No global mutable state.
    """

    def __init__(
        self,
        ledger: SourceLedger,
        registry: BlockRegistry,
        limits: LimitsConfig,
        sink: EventSink,
        cooldown: int = COOLDOWN,
    ) -> None:
        self._ledger = ledger
        self._registry = registry
        self._limits = limits
        self._sink = sink
        self._cooldown = cooldown
        self._windows: dict[str, RollingWindow] = {}
        self._prev_attempts: dict[str, int] = {}
        self._below_count: dict[str, int] = {}
        self._prev_total_attempted = 0
        self._prev_total_served = 0
        self._ticks = 0
        self._lock = threading.Lock()

    @property
    def ticks(self) -> int:
        return self._ticks

    def window_for(self, source: str) -> Optional[RollingWindow]:
        return self._windows.get(source)

    def hysteresis(self, source: str) -> Optional[int]:
        """Consecutive clear ticks for a blocked source, None if not tracked."""
        return self._below_count.get(source)

    def _window(self, source: str) -> RollingWindow:
        window = self._windows.get(source)
        if window is None:
            window = RollingWindow()
            self._windows[source] = window
        return window

    def _evaluate_source(
        self,
        source: str,
        delta: int,
        hard_limit: int,
        min_limit: int,
    ) -> Optional[FirewallEvent]:
        window = self._window(source)
        # Statistics reflect history strictly before this tick's sample
        mean = window.mean()
        sd = window.stddev()
        upper = mean + SIGMA_FACTOR * sd

        event: Optional[FirewallEvent] = None
        blocked = self._registry.contains(source)
        block_cond = delta >= min_limit and (delta > hard_limit or delta > upper)

        if not blocked and block_cond:
            self._registry.add(source)
            self._below_count.pop(source, None)
            event = FirewallEvent(kind=EventKind.BLOCKED, source=source, rps=delta)
            logger.warning(
                "[DETECT] Blocked %s: delta=%d hard=%d upper=%.2f (mean=%.2f sd=%.2f)",
                source, delta, hard_limit, upper, mean, sd,
            )
        elif blocked:
            clear = delta <= hard_limit and delta <= upper
            count = self._below_count.get(source, 0) + 1 if clear else 0
            if count >= self._cooldown:
                self._registry.remove(source)
                self._below_count.pop(source, None)
                event = FirewallEvent(kind=EventKind.UNBLOCKED, source=source)
                logger.info("[DETECT] Unblocked %s after %d clear ticks", source, count)
            else:
                self._below_count[source] = count

        window.record(delta)
        return event

    def tick(self) -> TickSummary:
        """
        Run one detection pass over the current attempt snapshot.
        Never raises on bad counter data; emits events to the sink.
        """
        with self._lock:
            hard_limit = self._limits.hard_limit
            min_limit = self._limits.min_limit

            snapshot = self._ledger.attempts_snapshot()
            total_attempted = self._ledger.total_attempted
            total_served = self._ledger.total_served

            events: list[FirewallEvent] = []
            top_source: Optional[str] = None
            top_delta = 0
            # Every identity ever seen gets a tick, even if missing from this snapshot
            sources = list(snapshot)
            sources.extend(s for s in self._prev_attempts if s not in snapshot)
            for source in sources:
                now = _as_count(snapshot.get(source))
                if now is None:
                    # Unreadable counter: no change this tick, keep the last good value
                    delta = 0
                else:
                    delta = now - self._prev_attempts.get(source, 0)
                    self._prev_attempts[source] = now
                if delta > top_delta:
                    top_delta = delta
                    top_source = source
                event = self._evaluate_source(source, delta, hard_limit, min_limit)
                if event is not None:
                    events.append(event)

            self._ticks += 1
            summary = TickSummary(
                tick=self._ticks,
                inbound=total_attempted - self._prev_total_attempted,
                served=total_served - self._prev_total_served,
                top_source=top_source,
                top_delta=top_delta,
                blocked=sorted(self._registry.snapshot()),
                events=events,
            )
            self._prev_total_attempted = total_attempted
            self._prev_total_served = total_served

        for event in events:
            self._sink.log_event(event.message)
        return summary
