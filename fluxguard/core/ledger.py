"""
FluxGuard - Per-source attempt/served counters.

Counters only ever grow: entries are created on first observation and live
for the whole process. Under a high-cardinality (spoofed) source flood this
grows without bound; no eviction is done.
"""

import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CounterState:
    """Attempts and served requests for one source identity."""

    attempts: int = 0
    served: int = 0


class SourceLedger:
    """
    Thread-safe counters keyed by source identity (exact string match).
    Each increment is applied exactly once under the ledger lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, CounterState] = {}
        self._total_attempted = 0
        self._total_served = 0

    def _entry(self, source: str) -> CounterState:
        state = self._counters.get(source)
        if state is None:
            state = CounterState()
            self._counters[source] = state
        return state

    def record_attempt(self, source: str) -> int:
        """Count one attempt from source; returns the source's new attempt total."""
        with self._lock:
            state = self._entry(source)
            state.attempts += 1
            self._total_attempted += 1
            return state.attempts

    def record_served(self, source: str) -> int:
        """Count one served request for source; returns the source's new served total."""
        with self._lock:
            state = self._entry(source)
            state.served += 1
            self._total_served += 1
            return state.served

    def attempts_snapshot(self) -> dict[str, int]:
        with self._lock:
            return {k: v.attempts for k, v in self._counters.items()}

    def served_snapshot(self) -> dict[str, int]:
        with self._lock:
            return {k: v.served for k, v in self._counters.items()}

    def attempts(self, source: str) -> int:
        with self._lock:
            state = self._counters.get(source)
            return state.attempts if state else 0

    def served(self, source: str) -> int:
        with self._lock:
            state = self._counters.get(source)
            return state.served if state else 0

    @property
    def total_attempted(self) -> int:
        with self._lock:
            return self._total_attempted

    @property
    def total_served(self) -> int:
        with self._lock:
            return self._total_served

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)
