"""
FluxGuard - Flood detection and admission core.

Provides rolling per-source statistics, concurrent counters, the
block/unblock detection engine, the admission gate and its HTTP surface.
"""

from fluxguard.core.admission import Admission, AdmissionGate
from fluxguard.core.alerts import (
    CompositeEventSink,
    ConsoleEventSink,
    EventSink,
    FileEventSink,
    LoggingEventSink,
)
from fluxguard.core.block_registry import BlockRegistry
from fluxguard.core.detection_engine import DetectionEngine
from fluxguard.core.guard import GuardCore
from fluxguard.core.ledger import SourceLedger
from fluxguard.core.limits import LimitsConfig
from fluxguard.core.observation import ObservationPipeline, parse_observation_line
from fluxguard.core.rolling_window import RollingWindow
from fluxguard.core.scheduler import TickScheduler

__all__ = [
    "Admission",
    "AdmissionGate",
    "BlockRegistry",
    "CompositeEventSink",
    "ConsoleEventSink",
    "DetectionEngine",
    "EventSink",
    "FileEventSink",
    "GuardCore",
    "LimitsConfig",
    "LoggingEventSink",
    "ObservationPipeline",
    "RollingWindow",
    "SourceLedger",
    "TickScheduler",
    "parse_observation_line",
]
