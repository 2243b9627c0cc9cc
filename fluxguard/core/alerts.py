"""
FluxGuard - Firewall event sinks.

The detection engine and the capture pipeline only know the EventSink
capability (log_event). Callers choose where lines go: colored console
(colorama), an append-only log file, the logging tree, the Rich dashboard,
or several of these at once.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Protocol, TextIO

import colorama
from colorama import Fore

from fluxguard.core.models import format_event_line

logger = logging.getLogger(__name__)

_colorama_init_done = False


def _ensure_colorama() -> None:
    global _colorama_init_done
    if not _colorama_init_done:
        colorama.init(autoreset=True)
        _colorama_init_done = True


def event_level(message: str) -> str:
    """Map an event message to CRITICAL / OK / WARNING for coloring."""
    if message.startswith("Blocked"):
        return "CRITICAL"
    if message.startswith("Unblocked"):
        return "OK"
    return "WARNING"


def colored_alert(message: str, level: str, stream: Optional[TextIO] = None) -> None:
    """
    Print an alert message in color. Safe on Linux and Windows.

    level: "CRITICAL" (red), "WARNING" (yellow), "INFO" or "OK" (green).
    """
    _ensure_colorama()
    level_upper = level.upper()
    if level_upper == "CRITICAL":
        prefix = Fore.RED
    elif level_upper == "WARNING":
        prefix = Fore.YELLOW
    else:
        prefix = Fore.GREEN
    print(f"{prefix}{message}", file=stream or sys.stderr)


class EventSink(Protocol):
    """Receives human-readable firewall event messages."""

    def log_event(self, message: str) -> None:
        ...


class ConsoleEventSink:
    """Timestamped, colored event lines on stderr."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def log_event(self, message: str) -> None:
        colored_alert(format_event_line(message), event_level(message), stream=self._stream)


class FileEventSink:
    """Appends timestamped event lines to a log file."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = Path(log_path)
        self._lock = threading.Lock()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(self, message: str) -> None:
        line = format_event_line(message) + "\n"
        with self._lock:
            try:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                logger.exception("Failed to write event to %s: %s", self.log_path, e)


class LoggingEventSink:
    """Forwards events to a logger (WARNING for blocks, INFO otherwise)."""

    def __init__(self, name: str = "fluxguard.firewall") -> None:
        self._logger = logging.getLogger(name)

    def log_event(self, message: str) -> None:
        level = logging.WARNING if event_level(message) == "CRITICAL" else logging.INFO
        self._logger.log(level, "%s", message)


class CallbackEventSink:
    """Adapts a plain callable (e.g. a dashboard's add_log) to EventSink."""

    def __init__(self, callback: Callable[[str], None]) -> None:
        self._callback = callback

    def log_event(self, message: str) -> None:
        self._callback(format_event_line(message))


class CompositeEventSink:
    """Fans one event out to several sinks; a failing sink does not stop the rest."""

    def __init__(self, sinks: Optional[list[EventSink]] = None) -> None:
        self._sinks: list[EventSink] = list(sinks or [])
        self._lock = threading.Lock()

    def add(self, sink: EventSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def remove(self, sink: EventSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def log_event(self, message: str) -> None:
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            try:
                sink.log_event(message)
            except Exception as e:
                logger.exception("Event sink %r failed: %s", sink, e)
