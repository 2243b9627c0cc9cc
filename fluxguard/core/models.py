"""
FluxGuard - Shared data models (firewall events, tick summaries).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# Local wall-clock format used in firewall event lines
EVENT_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


class EventKind(str, Enum):
    """Firewall decision kinds."""

    BLOCKED = "BLOCKED"
    UNBLOCKED = "UNBLOCKED"


@dataclass
class FirewallEvent:
    """One block/unblock decision taken by the detection engine."""

    kind: EventKind
    source: str
    rps: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def message(self) -> str:
        if self.kind == EventKind.BLOCKED:
            return f"Blocked {self.source} (rps={self.rps})"
        return f"Unblocked {self.source}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "source": self.source,
            "rps": self.rps,
            "timestamp": self.timestamp.isoformat(),
        }


def format_event_line(message: str, when: Optional[datetime] = None) -> str:
    """Prefix message with a local '[yyyy-MM-dd HH:mm:ss]' timestamp."""
    ts = (when or datetime.now()).strftime(EVENT_TS_FORMAT)
    return f"[{ts}] {message}"


@dataclass
class TickSummary:
    """Traffic figures and decisions produced by one detection tick."""

    tick: int
    inbound: int
    served: int
    top_source: Optional[str] = None
    top_delta: int = 0
    blocked: list[str] = field(default_factory=list)
    events: list[FirewallEvent] = field(default_factory=list)

    @property
    def under_attack(self) -> bool:
        return bool(self.blocked)

    @property
    def status(self) -> str:
        return "Under Attack" if self.under_attack else "Normal"
