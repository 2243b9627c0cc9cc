"""
FluxGuard - Configuration loader.

Loads config.yaml, applies defaults and clamps, and resolves paths relative
to the project root. Limit values are taken as-is: any integers are valid
for the detection engine.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from fluxguard.core.limits import DEFAULT_HARD_LIMIT, DEFAULT_MIN_LIMIT

logger = logging.getLogger(__name__)


def _as_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config value {key!r} must be an integer, got {value!r}") from None


def read_limits(config_path: Path) -> tuple[int, int]:
    """Re-read only the limits section (used for live reload)."""
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    limits_raw = raw.get("limits") or {}
    return (
        _as_int(limits_raw, "hard_limit", DEFAULT_HARD_LIMIT),
        _as_int(limits_raw, "min_limit", DEFAULT_MIN_LIMIT),
    )


def load_config(config_path: Path, project_root: Optional[Path] = None) -> dict[str, Any]:
    """
    Load YAML config and resolve paths relative to project_root.

    Args:
        config_path: Path to config.yaml.
        project_root: Base for relative paths; defaults to config_path parent's parent.

    Returns:
        Flat config dict with defaults applied.
    """
    path = config_path.resolve()
    if not path.is_file():
        raise FileNotFoundError(f"Config not found: {path}")

    root = project_root or path.parent.parent
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    server = raw.get("server") or {}
    host = str(server.get("host", "0.0.0.0"))
    port = _as_int(server, "port", 8080)
    workers = _as_int(server, "workers", 8)

    limits_raw = raw.get("limits") or {}
    hard_limit = _as_int(limits_raw, "hard_limit", DEFAULT_HARD_LIMIT)
    min_limit = _as_int(limits_raw, "min_limit", DEFAULT_MIN_LIMIT)

    detection = raw.get("detection") or {}
    tick_interval = float(detection.get("tick_interval_seconds", 1.0))

    capture = raw.get("capture") or {}
    capture_source = capture.get("source")
    queue_size = _as_int(capture, "queue_size", 10000)

    alerts_raw = raw.get("alerts") or {}
    log_path = alerts_raw.get("log_path", "./logs/firewall.log")
    console_alerts = bool(alerts_raw.get("console_alerts", True))

    dashboard_raw = raw.get("dashboard") or {}
    dashboard_interactive = bool(dashboard_raw.get("interactive", True))
    dashboard_history_size = _as_int(dashboard_raw, "history_size", 60)

    def resolve(p: str) -> Path:
        path_obj = Path(p)
        return (root / path_obj).resolve() if not path_obj.is_absolute() else path_obj.resolve()

    if capture_source in (None, ""):
        capture_source = None
    elif str(capture_source) != "-":
        capture_source = str(resolve(str(capture_source)))

    if min_limit > hard_limit:
        logger.warning("Config: min_limit (%d) is above hard_limit (%d)", min_limit, hard_limit)

    return {
        "config_path": path,
        "project_root": root,
        "host": host,
        "port": max(0, min(65535, port)),
        "workers": max(1, workers),
        "hard_limit": hard_limit,
        "min_limit": min_limit,
        "tick_interval": max(0.05, tick_interval),
        "capture_source": capture_source,
        "capture_queue_size": max(1, queue_size),
        "alert_log_path": resolve(log_path) if log_path else None,
        "console_alerts": console_alerts,
        "dashboard_interactive": dashboard_interactive,
        "dashboard_history_size": max(10, min(100, dashboard_history_size)),
    }
