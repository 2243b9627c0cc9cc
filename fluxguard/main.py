#!/usr/bin/env python3
"""
FluxGuard - CLI entry point.

Exposed as the 'fluxguard' console command via pyproject.toml.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path


def setup_logging(verbose: bool = False) -> None:
    """Configure logging to stderr (no print-based logging)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    # Per-request access lines from werkzeug are far too chatty under a flood
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def get_config(args: argparse.Namespace) -> dict:
    """Load config from file; config path may be overridden by args."""
    from fluxguard.core.config_loader import load_config

    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    config_path = config_path.resolve()
    project_root = Path.cwd().resolve()
    return load_config(config_path, project_root)


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """CLI flags win over config file values."""
    overrides = {
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
        "workers": getattr(args, "workers", None),
        "hard_limit": getattr(args, "hard_limit", None),
        "min_limit": getattr(args, "min_limit", None),
    }
    for key, value in overrides.items():
        if value is not None:
            config[key] = value
    observe = getattr(args, "observe", None)
    if observe:
        config["capture_source"] = observe if observe == "-" else str(Path(observe).resolve())
    if getattr(args, "no_dashboard", False):
        config["dashboard_interactive"] = False
    config["workers"] = max(1, int(config["workers"]))
    return config


def cmd_serve(config: dict) -> None:
    """Run the admission gate and detector until SIGINT/SIGTERM."""
    from fluxguard.core.monitor import TrafficMonitor

    shutdown = {"stop": False}

    def stop_event() -> bool:
        return shutdown["stop"]

    def on_signal(_signum, _frame) -> None:
        shutdown["stop"] = True

    monitor = TrafficMonitor(config, stop_event=stop_event)

    def on_reload(_signum, _frame) -> None:
        monitor.request_reload()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, on_reload)

    monitor.run()


def build_parser() -> argparse.ArgumentParser:
    _default_config = Path(__file__).resolve().parent / "config" / "config.yaml"
    parser = argparse.ArgumentParser(
        prog="fluxguard",
        description="Per-source flood detection and admission control for an HTTP endpoint.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(_default_config),
        help="Path to config.yaml (default: package config; use CWD-relative or absolute)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Start the admission gate and 1 Hz detector")
    p_serve.add_argument("--host", type=str, default=None, help="Bind address")
    p_serve.add_argument("--port", type=int, default=None, help="Listen port")
    p_serve.add_argument("--workers", type=int, default=None, help="HTTP worker pool size")
    p_serve.add_argument("--hard-limit", type=int, default=None, dest="hard_limit",
                         help="Absolute per-source requests/s ceiling")
    p_serve.add_argument("--min-limit", type=int, default=None, dest="min_limit",
                         help="Per-source requests/s floor below which nothing is blocked")
    p_serve.add_argument(
        "--observe",
        type=str,
        default=None,
        help="Capture output to consume ('-' for stdin), e.g. tcpdump -l -n ... | fluxguard serve --observe -",
    )
    p_serve.add_argument("--no-dashboard", action="store_true", dest="no_dashboard",
                         help="Plain log output instead of the Rich dashboard")
    return parser


def main(argv=None) -> int:
    """CLI logic."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = apply_overrides(get_config(args), args)
    except FileNotFoundError as e:
        logging.getLogger(__name__).error("%s", e)
        return 1
    except Exception as e:
        logging.getLogger(__name__).exception("Failed to load config: %s", e)
        return 1

    if args.command == "serve":
        cmd_serve(config)
    else:
        parser.print_help()
    return 0


def cli() -> None:
    """Entry point for the fluxguard console command."""
    sys.exit(main())
