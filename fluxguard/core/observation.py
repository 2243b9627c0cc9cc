"""
FluxGuard - Connection-attempt observation pipeline.

Consumes capture-tool text output (one packet per line) and feeds source
attempts into the ledger:

    reader thread --(bounded queue)--> parser thread --> SourceLedger

The queue bound gives backpressure: a slow parser stalls the reader, not
memory. One stop event cancels both stages. When the source fails or ends,
the pipeline logs it and reports it to the event sink; detection carries on
with HTTP-observed traffic only.

Line format: '<ts> IP <srcIP>.<srcPort> > <dstIP>.<dstPort>: <flags...>'
"""

import logging
import queue
import threading
from typing import Iterable, Optional

from fluxguard.core.alerts import EventSink
from fluxguard.core.ledger import SourceLedger

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 10000

# How long blocking queue operations wait before re-checking the stop event
_POLL_SECONDS = 0.2

_EOF = object()


def parse_observation_line(line: str) -> Optional[str]:
    """
    Source IP of an observation line, or None for anything malformed.
    The source is token[2] up to its last '.', which strips the port and
    also works for IPv6 addresses.
    """
    parts = line.split()
    if len(parts) < 3 or parts[1] != "IP":
        return None
    addr_port = parts[2]
    idx = addr_port.rfind(".")
    if idx <= 0:
        return None
    return addr_port[:idx]


class ObservationPipeline:
    """Bounded producer/consumer pipeline from a line source to the ledger."""

    def __init__(
        self,
        lines: Iterable[str],
        ledger: SourceLedger,
        sink: Optional[EventSink] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._lines = lines
        self._ledger = ledger
        self._sink = sink
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max(1, queue_size))
        self._stop_event = stop_event or threading.Event()
        self._reader: Optional[threading.Thread] = None
        self._parser: Optional[threading.Thread] = None
        self._parsed = 0
        self._dropped = 0
        self._counts_lock = threading.Lock()

    @property
    def parsed(self) -> int:
        """Lines that produced an attempt."""
        with self._counts_lock:
            return self._parsed

    @property
    def dropped(self) -> int:
        """Malformed lines discarded."""
        with self._counts_lock:
            return self._dropped

    @property
    def running(self) -> bool:
        return any(t is not None and t.is_alive() for t in (self._reader, self._parser))

    def start(self) -> None:
        self._reader = threading.Thread(
            target=self._read_loop, daemon=True, name="fluxguard-capture-reader",
        )
        self._parser = threading.Thread(
            target=self._parse_loop, daemon=True, name="fluxguard-capture-parser",
        )
        self._parser.start()
        self._reader.start()
        logger.info("[CAPTURE] Observation pipeline started (queue=%d)", self._queue.maxsize)

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        for t in (self._reader, self._parser):
            if t is not None:
                t.join(timeout=timeout)
        self._reader = None
        self._parser = None

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for both stages to finish (e.g. after a finite source ends)."""
        for t in (self._reader, self._parser):
            if t is not None:
                t.join(timeout=timeout)

    def _report(self, message: str) -> None:
        if self._sink is not None:
            self._sink.log_event(message)

    def _put(self, item: object) -> bool:
        """Blocking put that gives up when stopping. Returns False if stopped."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(item, timeout=_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def _read_loop(self) -> None:
        try:
            for line in self._lines:
                if not self._put(line):
                    return
            logger.warning("[CAPTURE] Observation source ended")
            self._report("Packet capture ended")
        except (OSError, ValueError) as e:
            logger.warning("[CAPTURE] Observation source failed: %s", e)
            self._report(f"Packet capture error: {e}")
        finally:
            self._put(_EOF)

    def _parse_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                item = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            if item is _EOF:
                return
            source = parse_observation_line(str(item))
            if source is None:
                with self._counts_lock:
                    self._dropped += 1
                logger.debug("[CAPTURE] Dropped malformed line: %r", item)
                continue
            self._ledger.record_attempt(source)
            with self._counts_lock:
                self._parsed += 1
