"""
FluxGuard - Core object wiring ledger, registry, limits and event sink.

One GuardCore is built explicitly and handed by reference to the admission
path, the tick scheduler and the observation pipeline.
"""

from typing import Optional

from fluxguard.core.admission import AdmissionGate
from fluxguard.core.alerts import CompositeEventSink, EventSink
from fluxguard.core.block_registry import BlockRegistry
from fluxguard.core.detection_engine import DetectionEngine
from fluxguard.core.ledger import SourceLedger
from fluxguard.core.limits import LimitsConfig


class GuardCore:
    """Shared detection state plus the gate and engine built on top of it."""

    def __init__(
        self,
        limits: Optional[LimitsConfig] = None,
        sink: Optional[EventSink] = None,
    ) -> None:
        self.ledger = SourceLedger()
        self.registry = BlockRegistry()
        self.limits = limits or LimitsConfig()
        self.sink: EventSink = sink if sink is not None else CompositeEventSink()
        self.gate = AdmissionGate(self.ledger, self.registry)
        self.engine = DetectionEngine(self.ledger, self.registry, self.limits, self.sink)
