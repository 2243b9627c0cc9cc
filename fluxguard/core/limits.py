"""
FluxGuard - Runtime-mutable detection limits.

hard_limit is the absolute per-tick ceiling; min_limit is the floor below
which no block decision is taken. Both may be changed at any time from a
control surface (CLI, SIGHUP reload); the detection engine reads them once
per tick. Fields are updated independently, with no cross-field atomicity.
"""

import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HARD_LIMIT = 369
DEFAULT_MIN_LIMIT = 1


class LimitsConfig:
    """Pair of integer limits, each read and written atomically."""

    def __init__(
        self,
        hard_limit: int = DEFAULT_HARD_LIMIT,
        min_limit: int = DEFAULT_MIN_LIMIT,
    ) -> None:
        self._lock = threading.Lock()
        self._hard_limit = int(hard_limit)
        self._min_limit = int(min_limit)

    @property
    def hard_limit(self) -> int:
        with self._lock:
            return self._hard_limit

    @hard_limit.setter
    def hard_limit(self, value: int) -> None:
        with self._lock:
            self._hard_limit = int(value)

    @property
    def min_limit(self) -> int:
        with self._lock:
            return self._min_limit

    @min_limit.setter
    def min_limit(self, value: int) -> None:
        with self._lock:
            self._min_limit = int(value)

    def update(self, hard_limit: Optional[int] = None, min_limit: Optional[int] = None) -> None:
        """Set whichever limits are given. Any integers are accepted."""
        if hard_limit is not None:
            self.hard_limit = hard_limit
        if min_limit is not None:
            self.min_limit = min_limit
        hard, low = self.hard_limit, self.min_limit
        if low > hard:
            logger.warning("min_limit %d is above hard_limit %d; sources below %d are never blocked", low, hard, low)
        logger.info("Limits updated: hard_limit=%d min_limit=%d", hard, low)

    def __repr__(self) -> str:
        return f"LimitsConfig(hard_limit={self.hard_limit}, min_limit={self.min_limit})"
