"""
Shared fixtures for FluxGuard tests.
"""

import pytest

from fluxguard.core.guard import GuardCore
from fluxguard.core.limits import LimitsConfig


class RecordingSink:
    """EventSink that keeps every message in memory."""

    def __init__(self):
        self.messages = []

    def log_event(self, message):
        self.messages.append(message)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def limits():
    return LimitsConfig(hard_limit=369, min_limit=1)


@pytest.fixture
def core(limits, sink):
    return GuardCore(limits=limits, sink=sink)


def send(core, source, count):
    """Record count attempts for source, as the capture pipeline would."""
    for _ in range(count):
        core.ledger.record_attempt(source)


@pytest.fixture
def feed():
    return send
