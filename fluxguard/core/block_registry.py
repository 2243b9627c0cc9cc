"""
FluxGuard - Set of currently blocked sources.

Written only by the detection engine; the admission gate reads it on every
request.
"""

import threading


class BlockRegistry:
    """Thread-safe set of blocked source identities."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blocked: set[str] = set()

    def add(self, source: str) -> None:
        with self._lock:
            self._blocked.add(source)

    def remove(self, source: str) -> None:
        with self._lock:
            self._blocked.discard(source)

    def contains(self, source: str) -> bool:
        with self._lock:
            return source in self._blocked

    def snapshot(self) -> set[str]:
        """Copy of the blocked set; no ordering guarantee."""
        with self._lock:
            return set(self._blocked)

    def __contains__(self, source: object) -> bool:
        return isinstance(source, str) and self.contains(source)

    def __len__(self) -> int:
        with self._lock:
            return len(self._blocked)
