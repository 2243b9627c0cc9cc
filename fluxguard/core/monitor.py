"""
FluxGuard - Monitoring runtime.

Wires the pieces around one GuardCore:

    observation pipeline ─┐
                          ├─> SourceLedger ─(tick)─> DetectionEngine ─> BlockRegistry ─> AdmissionGate
    HTTP admission gate ──┘                                  └─> event sinks (file, console, dashboard)

Runs until stop_event() returns True, then stops the HTTP server, the tick
scheduler and the capture pipeline in that order.
"""

import contextlib
import logging
import sys
import time
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from fluxguard.core.alerts import (
    CallbackEventSink,
    CompositeEventSink,
    ConsoleEventSink,
    FileEventSink,
    LoggingEventSink,
)
from fluxguard.core.config_loader import read_limits
from fluxguard.core.guard import GuardCore
from fluxguard.core.http_server import PooledWSGIServer, create_app
from fluxguard.core.limits import LimitsConfig
from fluxguard.core.models import TickSummary
from fluxguard.core.observation import ObservationPipeline
from fluxguard.core.scheduler import TickScheduler

logger = logging.getLogger(__name__)

# Main-loop poll / dashboard refresh period
_REFRESH_SECONDS = 0.25


@contextlib.contextmanager
def _suppress_stderr_logging():
    stderr_handlers = [
        h for h in logging.root.handlers
        if getattr(h, "stream", None) is sys.stderr
    ]
    flag = [True]

    class _Filter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            return not flag[0]

    added: list[tuple[logging.Handler, logging.Filter]] = []
    for h in stderr_handlers:
        f = _Filter()
        h.addFilter(f)
        added.append((h, f))
    try:
        yield
    finally:
        flag[0] = False
        for h, f in added:
            h.removeFilter(f)


def _use_rich_dashboard(config: dict[str, Any]) -> bool:
    if not config.get("dashboard_interactive", True):
        return False
    return sys.stderr.isatty()


def iter_source_lines(source: str) -> Iterator[str]:
    """Lines from a file/FIFO path, or stdin for '-'. Opened lazily by the reader thread."""
    if source == "-":
        yield from sys.stdin
        return
    with open(source, encoding="utf-8", errors="replace") as f:
        yield from f


class TrafficMonitor:
    """
    Owns the runtime threads for one GuardCore: HTTP accept loop + worker
    pool, 1 Hz detection scheduler, optional observation pipeline and the
    dashboard refresh loop.
    """

    def __init__(
        self,
        config: dict[str, Any],
        stop_event: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.config = config
        self.stop_event = stop_event or (lambda: False)
        self.use_rich = _use_rich_dashboard(config)
        self.sink = CompositeEventSink()
        log_path = config.get("alert_log_path")
        if log_path:
            self.sink.add(FileEventSink(Path(log_path)))
        if config.get("console_alerts", True) and not self.use_rich:
            self.sink.add(ConsoleEventSink())
        else:
            self.sink.add(LoggingEventSink())
        self.core = GuardCore(
            limits=LimitsConfig(config["hard_limit"], config["min_limit"]),
            sink=self.sink,
        )
        self.dashboard: Optional[Any] = None
        if self.use_rich:
            from fluxguard.core.rich_dashboard import RichDashboard

            self.dashboard = RichDashboard(
                self.core.limits,
                history_size=config.get("dashboard_history_size", 60),
            )
            self.sink.add(CallbackEventSink(self.dashboard.add_log))
        self.scheduler = TickScheduler(
            self.core.engine.tick,
            interval=config.get("tick_interval", 1.0),
            on_summary=self._on_summary,
        )
        self.server: Optional[PooledWSGIServer] = None
        self.pipeline: Optional[ObservationPipeline] = None
        self._reload_requested = False

    def _on_summary(self, summary: TickSummary) -> None:
        if self.dashboard is not None:
            self.dashboard.update(summary)
        logger.debug(
            "[TICK] #%d status=%s inbound=%d served=%d top=%s blocked=%s",
            summary.tick,
            summary.status,
            summary.inbound,
            summary.served,
            summary.top_source or "None",
            ",".join(summary.blocked) or "None",
        )

    def reload_limits(self) -> None:
        """Re-read the limits section of the config file into the live limits."""
        config_path = self.config.get("config_path")
        if not config_path:
            return
        try:
            hard, low = read_limits(Path(config_path))
        except (OSError, ValueError) as e:
            logger.warning("Limits reload failed, keeping %r: %s", self.core.limits, e)
            return
        self.core.limits.update(hard_limit=hard, min_limit=low)

    def request_reload(self) -> None:
        """Flag a limits reload for the main loop; takes no locks, callable from a signal handler."""
        self._reload_requested = True

    def _apply_pending_reload(self) -> None:
        if self._reload_requested:
            self._reload_requested = False
            self.reload_limits()

    def start(self) -> None:
        source = self.config.get("capture_source")
        if source:
            self.pipeline = ObservationPipeline(
                iter_source_lines(source),
                self.core.ledger,
                sink=self.sink,
                queue_size=self.config.get("capture_queue_size", 10000),
            )
            self.pipeline.start()
        else:
            logger.info("[CAPTURE] No observation source configured; detecting on HTTP traffic only")
        self.scheduler.start()
        app = create_app(self.core.gate)
        self.server = PooledWSGIServer(
            self.config["host"],
            self.config["port"],
            app,
            workers=self.config["workers"],
        )
        self.server.start_background()

    def shutdown(self) -> None:
        if self.server is not None:
            self.server.stop()
            self.server = None
        self.scheduler.stop()
        if self.pipeline is not None:
            self.pipeline.stop()
            self.pipeline = None

    def run(self) -> None:
        logger.info(
            "Starting FluxGuard (port=%d, workers=%d, %r)",
            self.config["port"],
            self.config["workers"],
            self.core.limits,
        )
        self.start()
        try:
            if self.dashboard is not None:
                self._run_with_rich_dashboard()
            else:
                self._run_plain()
        finally:
            self.shutdown()
        logger.info(
            "FluxGuard stopped (sources=%d attempted=%d served=%d blocked=%d).",
            len(self.core.ledger),
            self.core.ledger.total_attempted,
            self.core.ledger.total_served,
            len(self.core.registry),
        )

    def _run_with_rich_dashboard(self) -> None:
        from fluxguard.core.rich_dashboard import create_live_dashboard

        live = create_live_dashboard(self.dashboard, refresh_per_second=4.0)
        with _suppress_stderr_logging(), live:
            while not self.stop_event():
                self._apply_pending_reload()
                live.update(self.dashboard.get_renderable(), refresh=True)
                time.sleep(_REFRESH_SECONDS)

    def _run_plain(self) -> None:
        while not self.stop_event():
            self._apply_pending_reload()
            time.sleep(_REFRESH_SECONDS)
