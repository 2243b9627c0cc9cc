"""
Tests for the block/unblock detection engine.
"""

import math
import random

import pytest

from fluxguard.core.block_registry import BlockRegistry
from fluxguard.core.detection_engine import COOLDOWN, DetectionEngine
from fluxguard.core.ledger import SourceLedger
from fluxguard.core.models import EventKind


class TestScenarios:
    """End-to-end tick scenarios."""

    def test_burst_blocks_then_three_clear_ticks_unblock(self, core, sink, feed):
        """Burst of 500 blocks on tick 1; ticks 2-4 at 0 unblock on tick 4."""
        feed(core, "X", 500)
        summary = core.engine.tick()
        assert core.registry.contains("X")
        assert sink.messages == ["Blocked X (rps=500)"]
        assert summary.events[0].kind == EventKind.BLOCKED
        assert summary.events[0].rps == 500

        for expected in (1, 2):
            core.engine.tick()
            assert core.registry.contains("X")
            assert core.engine.hysteresis("X") == expected

        summary = core.engine.tick()
        assert not core.registry.contains("X")
        assert core.engine.hysteresis("X") is None
        assert sink.messages[-1] == "Unblocked X"
        assert summary.events[0].kind == EventKind.UNBLOCKED

    def test_constant_rate_settles_and_is_never_blocked_again(self, core, sink, feed):
        """
        Constant 50/tick: the empty first window blocks tick 1, the source is
        released after the cooldown and then stays unblocked through tick 70.
        """
        blocked_ticks = []
        for tick in range(1, 71):
            feed(core, "Y", 50)
            core.engine.tick()
            if core.registry.contains("Y"):
                blocked_ticks.append(tick)
        assert blocked_ticks == [1, 2, 3]
        assert sink.messages == ["Blocked Y (rps=50)", "Unblocked Y"]
        window = core.engine.window_for("Y")
        assert len(window) == 60
        assert window.mean() == 50
        assert window.stddev() == 0


class TestHysteresis:
    """Cooldown behavior once a source is blocked."""

    def test_cooldown_is_three(self):
        assert COOLDOWN == 3

    def test_stays_blocked_at_least_three_ticks(self, core, feed):
        """Even with zero traffic right after blocking, release needs 3 ticks."""
        feed(core, "X", 1000)
        core.engine.tick()
        for _ in range(COOLDOWN - 1):
            core.engine.tick()
            assert core.registry.contains("X")
        core.engine.tick()
        assert not core.registry.contains("X")

    def test_noisy_tick_resets_counter(self, core, feed):
        """A tick above the hard limit while blocked restarts the cooldown."""
        feed(core, "X", 500)
        core.engine.tick()
        core.engine.tick()
        core.engine.tick()
        assert core.engine.hysteresis("X") == 2
        feed(core, "X", 400)
        core.engine.tick()
        assert core.engine.hysteresis("X") == 0
        assert core.registry.contains("X")

    def test_reblock_emits_new_event(self, core, sink, feed):
        """A released source can be blocked again by a later burst."""
        feed(core, "X", 500)
        for _ in range(4):
            core.engine.tick()
        feed(core, "X", 1000)
        core.engine.tick()
        assert sink.messages == [
            "Blocked X (rps=500)",
            "Unblocked X",
            "Blocked X (rps=1000)",
        ]


class TestThresholds:
    """Block conditions around the hard and min limits."""

    def test_no_block_below_min_limit(self, core, limits, feed):
        """Deltas below min_limit never block, even over an empty window."""
        limits.min_limit = 10
        for _ in range(5):
            feed(core, "quiet", 9)
            core.engine.tick()
        assert not core.registry.contains("quiet")

    def test_min_limit_above_hard_limit_still_blocks_large_bursts(self, core, limits, feed):
        """min_limit > hard_limit is valid: only deltas >= min_limit can block."""
        limits.update(hard_limit=10, min_limit=100)
        feed(core, "a", 50)
        feed(core, "b", 150)
        core.engine.tick()
        assert not core.registry.contains("a")
        assert core.registry.contains("b")

    def test_limits_read_each_tick(self, core, limits, feed):
        """A limit change takes effect at the next tick."""
        limits.min_limit = 1000
        feed(core, "X", 500)
        core.engine.tick()
        assert not core.registry.contains("X")
        limits.update(hard_limit=100, min_limit=1)
        feed(core, "X", 500)
        core.engine.tick()
        assert core.registry.contains("X")

    def test_statistical_ceiling_blocks_spike(self, core, limits, feed):
        """A spike above mean + 2*stddev but below the hard limit blocks."""
        limits.min_limit = 20
        rng = random.Random(7)
        for _ in range(30):
            feed(core, "Z", rng.randint(5, 15))
            core.engine.tick()
        assert not core.registry.contains("Z")
        feed(core, "Z", 60)
        core.engine.tick()
        assert core.registry.contains("Z")

    def test_no_false_block_within_ceilings(self, limits, sink):
        """Deltas below min_limit or within mean + 2*stddev never block."""
        limits.min_limit = 20
        ledger = SourceLedger()
        registry = BlockRegistry()
        engine = DetectionEngine(ledger, registry, limits, sink)
        rng = random.Random(42)
        history = []
        fed = 0
        for _ in range(300):
            if history:
                mean = sum(history[-60:]) / len(history[-60:])
                var = sum(h * h for h in history[-60:]) / len(history[-60:]) - mean * mean
                upper = mean + 2 * math.sqrt(max(0.0, var))
            else:
                upper = 0.0
            candidate = rng.randint(0, 40)
            if candidate >= limits.min_limit and candidate > upper - 1e-6:
                candidate = min(limits.min_limit - 1, int(upper))
            for _ in range(candidate):
                ledger.record_attempt("S")
            fed += candidate
            engine.tick()
            history.append(candidate)
            assert not registry.contains("S")
        assert ledger.attempts("S") == fed
        assert sink.messages == []


class TestTickMechanics:
    """Snapshot deltas, ordering and summaries."""

    def test_decision_ignores_current_sample(self, core, feed):
        """The window only receives a tick's delta after the decision."""
        feed(core, "X", 5)
        core.engine.tick()
        window = core.engine.window_for("X")
        assert window.values() == [5.0]

    def test_delta_uses_previous_snapshot(self, core, limits, feed):
        """Only the increase since the previous tick counts."""
        limits.min_limit = 1000
        feed(core, "X", 30)
        core.engine.tick()
        feed(core, "X", 12)
        core.engine.tick()
        assert core.engine.window_for("X").values() == [30.0, 12.0]

    def test_summary_reports_traffic(self, core, feed):
        """TickSummary carries inbound/served deltas and the top source."""
        feed(core, "a", 3)
        feed(core, "b", 7)
        core.ledger.record_served("a")
        summary = core.engine.tick()
        assert summary.tick == 1
        assert summary.inbound == 10
        assert summary.served == 1
        assert summary.top_source == "b"
        assert summary.top_delta == 7
        assert summary.blocked == ["a", "b"]
        assert summary.status == "Under Attack"

        summary = core.engine.tick()
        assert summary.inbound == 0
        assert summary.top_source is None

    def test_malformed_snapshot_value_is_zero(self, limits, sink):
        """Unusable counter values count as 0 and never raise."""
        class BrokenLedger(SourceLedger):
            def attempts_snapshot(self):
                return {"bad": "garbage", "none": None}

        registry = BlockRegistry()
        engine = DetectionEngine(BrokenLedger(), registry, limits, sink)
        summary = engine.tick()
        assert registry.snapshot() == set()
        assert summary.events == []
        assert engine.window_for("bad").values() == [0.0]

    def test_malformed_value_after_history_is_zero_delta(self, limits, sink):
        """A bad read counts as no change and does not inflate the next delta."""
        limits.hard_limit = 150

        class FlakyLedger(SourceLedger):
            def __init__(self, reads):
                super().__init__()
                self._reads = iter(reads)

            def attempts_snapshot(self):
                return {"X": next(self._reads)}

        registry = BlockRegistry()
        engine = DetectionEngine(FlakyLedger([100, 200, "garbage", 300]), registry, limits, sink)
        for _ in range(4):
            engine.tick()
        assert engine.window_for("X").values() == [100.0, 100.0, 0.0, 100.0]
        # Three clear ticks after the first-sample block, so X is released on schedule
        assert not registry.contains("X")
        assert sink.messages == ["Blocked X (rps=100)", "Unblocked X"]

    def test_source_missing_from_snapshot_ticks_with_zero_delta(self, limits, sink):
        """Identities seen earlier keep ticking when absent from a snapshot."""
        class ShrinkingLedger(SourceLedger):
            def __init__(self):
                super().__init__()
                self._reads = iter([{"X": 10, "Y": 5}, {"Y": 5}, {"X": 12, "Y": 5}])

            def attempts_snapshot(self):
                return next(self._reads)

        registry = BlockRegistry()
        engine = DetectionEngine(ShrinkingLedger(), registry, limits, sink)
        for _ in range(3):
            engine.tick()
        assert engine.window_for("X").values() == [10.0, 0.0, 2.0]

    def test_empty_ledger_tick(self, core):
        """A tick with nothing observed is a no-op summary."""
        summary = core.engine.tick()
        assert summary.inbound == 0
        assert summary.blocked == []
        assert summary.status == "Normal"
