"""
FluxGuard - Rolling per-source rate statistics.

Keeps the last CAPACITY per-tick samples for one source together with a
running sum and sum of squares, so mean and population standard deviation
are O(1) regardless of window size.
"""

import math
import threading
from collections import deque
from typing import Deque

# Samples kept per source (one per tick, i.e. one minute at 1 Hz)
CAPACITY = 60


class RollingWindow:
    """
    Fixed-capacity sliding window of numeric samples. Inserting past
    capacity evicts the oldest sample. All operations are serialized by an
    internal lock so readers outside the tick thread see consistent sums.
    """

    def __init__(self, capacity: int = CAPACITY) -> None:
        self._capacity = max(1, capacity)
        self._samples: Deque[float] = deque()
        self._sum = 0.0
        self._sum_sq = 0.0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, value: float) -> None:
        """Append a sample, evicting the oldest one when over capacity."""
        v = float(value)
        with self._lock:
            self._samples.append(v)
            self._sum += v
            self._sum_sq += v * v
            if len(self._samples) > self._capacity:
                old = self._samples.popleft()
                self._sum -= old
                self._sum_sq -= old * old

    def _mean_locked(self) -> float:
        if not self._samples:
            return 0.0
        return self._sum / len(self._samples)

    def mean(self) -> float:
        with self._lock:
            return self._mean_locked()

    def stddev(self) -> float:
        """Population standard deviation; 0 for an empty window."""
        with self._lock:
            if not self._samples:
                return 0.0
            m = self._mean_locked()
            variance = self._sum_sq / len(self._samples) - m * m
            # Float cancellation can leave a tiny negative residue
            return math.sqrt(max(0.0, variance))

    def values(self) -> list[float]:
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
