"""
FluxGuard - Rich CLI dashboard.

Layout: Traffic Summary | Inbound Activity (sparkline vs hard limit) | Firewall Log.
Fed with real tick summaries only. Single Live instance.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from rich import box as rich_box
from rich.console import Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from fluxguard.core.alerts import event_level
from fluxguard.core.limits import LimitsConfig
from fluxguard.core.models import TickSummary

# Sparkline glyphs, lowest to highest
_SPARK = "▁▂▃▄▅▆▇█"
GRAPH_WINDOW_SIZE = 60


@dataclass
class TickRecord:
    """Inbound/served per-second rates for one tick."""

    tick: int
    inbound: int
    served: int
    status: str


def _style_status(status: str) -> str:
    return "bold red" if status == "Under Attack" else "bold green"


def _style_level(level: str) -> str:
    if level == "CRITICAL":
        return "red"
    if level == "WARNING":
        return "yellow"
    return "green"


def sparkline(values: list[int], ceiling: int) -> Text:
    """One-line bar chart; bars above the ceiling are red."""
    if not values:
        return Text("— no traffic yet —", style="dim")
    top = max(max(values), ceiling, 1)
    text = Text()
    for v in values:
        idx = min(len(_SPARK) - 1, int(len(_SPARK) * max(0, v) / (top + 1)))
        style = "red" if v > ceiling else ("yellow" if v * 2 > ceiling else "green")
        text.append(_SPARK[idx], style=style)
    return text


class RichDashboard:
    """
    Traffic Summary, Inbound Activity and Firewall Log panels. update() is
    called from the tick thread and add_log() from any event source, so
    history is guarded by a lock.
    """

    def __init__(self, limits: LimitsConfig, history_size: int = 60) -> None:
        self._limits = limits
        self._history_size = max(10, min(100, history_size))
        self._ticks: deque[TickRecord] = deque(maxlen=self._history_size)
        self._log_history: deque[str] = deque(maxlen=self._history_size)
        self._last: Optional[TickSummary] = None
        self._lock = threading.Lock()

    def update(self, summary: TickSummary) -> None:
        """Push one tick's figures."""
        with self._lock:
            self._last = summary
            self._ticks.append(
                TickRecord(
                    tick=summary.tick,
                    inbound=summary.inbound,
                    served=summary.served,
                    status=summary.status,
                )
            )

    def add_log(self, line: str) -> None:
        """Append one firewall log line."""
        with self._lock:
            self._log_history.append(line)

    def _make_summary_panel(self) -> Panel:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="dim")
        table.add_column()
        last = self._last
        if last is None:
            table.add_row("Status", Text("Normal", style="bold green"))
            table.add_row("Inbound", "—")
            table.add_row("Served", "—")
            table.add_row("Top source", "None")
            table.add_row("Blocked", "None")
        else:
            table.add_row("Status", Text(last.status, style=_style_status(last.status)))
            table.add_row("Inbound", "%d req/s" % last.inbound)
            table.add_row("Served", "%d req/s" % last.served)
            if last.top_source:
                table.add_row("Top source", Text("%s (%d req/s)" % (last.top_source, last.top_delta)))
            else:
                table.add_row("Top source", "None")
            table.add_row(
                "Blocked",
                Text(", ".join(last.blocked), style="red") if last.blocked else Text("None"),
            )
        table.add_row("Limits", "hard=%d  min=%d" % (self._limits.hard_limit, self._limits.min_limit))
        return Panel(
            table,
            title="[bold] Traffic Summary [/]",
            border_style="cyan",
            box=rich_box.ROUNDED,
            padding=(0, 1),
        )

    def _make_graph_panel(self) -> Panel:
        records = list(self._ticks)[-GRAPH_WINDOW_SIZE:]
        hard = self._limits.hard_limit
        inbound = sparkline([r.inbound for r in records], hard)
        served = sparkline([r.served for r in records], hard)
        body = Table(show_header=False, box=None, padding=(0, 1))
        body.add_column(style="dim")
        body.add_column()
        body.add_row("Inbound", inbound)
        body.add_row("Served", served)
        if records:
            r = records[-1]
            subtitle = Text(" Tick %d  |  Hard limit: %d  " % (r.tick, hard), style="dim")
            under_attack = r.status == "Under Attack"
        else:
            subtitle = Text(" Tick —  |  Hard limit: %d  " % hard, style="dim")
            under_attack = False
        return Panel(
            body,
            title="[bold] Inbound Activity [/]",
            subtitle=subtitle,
            border_style="bold red" if under_attack else "bright_black",
            box=rich_box.ROUNDED,
            padding=(0, 1),
        )

    def _make_log_panel(self) -> Panel:
        table = Table(show_header=False, box=rich_box.SIMPLE, padding=(0, 1))
        table.add_column("Event", overflow="fold")
        recent = list(self._log_history)
        if recent:
            for line in recent[-15:]:
                message = line.split("] ", 1)[-1]
                table.add_row(Text(line, style=_style_level(event_level(message))))
        else:
            table.add_row(Text("No firewall events yet", style="dim"))
        return Panel(
            table,
            title="[bold] Firewall Log [/]",
            border_style="magenta",
            box=rich_box.ROUNDED,
            padding=(0, 1),
        )

    def get_renderable(self) -> RenderableType:
        """Single renderable for Live.update()."""
        with self._lock:
            return Group(
                self._make_summary_panel(),
                self._make_graph_panel(),
                self._make_log_panel(),
            )


def create_live_dashboard(
    dashboard: RichDashboard,
    console: Optional[Any] = None,
    refresh_per_second: float = 4.0,
) -> Live:
    """Rich Live instance; refresh with live.update(dashboard.get_renderable(), refresh=True)."""
    return Live(
        dashboard.get_renderable(),
        console=console,
        refresh_per_second=refresh_per_second,
        auto_refresh=False,
        transient=False,
    )
