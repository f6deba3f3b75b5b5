# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
serve
    - Starts the APScheduler scan loop via service.scheduler.start()
    - Registers signal handlers; SIGINT/SIGTERM cancel the in-flight cycle

scan-once [--dry-run] [--set k=v ...]
    - Runs one scan cycle now via runner.run_cycle_once(...)
    - Prints the cycle report as JSON

validate-config
    - Loads/validates config and returns nonzero on error

blacklist add NAME REALM [--reason TEXT] | remove NAME REALM | list
    - Operator-side blacklist management (the pipeline only reads it)

stats
    - Seen-record count and blacklist size

purge [--days N]
    - Runs the retention sweep by hand
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any

from modules.recruit_watch.lib.config import Settings
from modules.recruit_watch.lib.db import SeenStore, StoreError
from modules.recruit_watch.lib.models import Identity
from modules.recruit_watch.lib.utils import utcnow
from service import config_schema as _config_schema
from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    """Very simple fixed-width table printer."""
    rows = [tuple(str(c) for c in r) for r in rows]
    widths = [max(len(h), *(len(r[i]) for r in rows)) if rows else len(h) for i, h in enumerate(headers)]
    sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _now_iso():
    return datetime.now().astimezone().isoformat()


def _load_settings(path: str | None, overrides: dict[str, Any] | None = None) -> Settings:
    cfg = _config_schema.load_config(path)
    _config_schema.validate(cfg)
    return Settings.from_env_and_kwargs({**cfg[_config_schema.MODULE_KEY], **(overrides or {})})


def _open_store(args: argparse.Namespace) -> SeenStore:
    return SeenStore(_load_settings(args.config).sqlite_path)


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        print("OK: configuration is valid.")
        return 0
    except KeyboardInterrupt:
        return 130
    except _config_schema.ConfigError as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1


def cmd_scan_once(args: argparse.Namespace) -> int:
    from modules.recruit_watch.main import build_scanner

    start_time = time.monotonic()
    try:
        overrides = _runner.normalize_overrides(args.set)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if args.dry_run:
        overrides["dry_run"] = True

    try:
        settings = _load_settings(args.config, overrides)
    except _config_schema.ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1

    cancel = threading.Event()

    def _cancel(signum=None, frame=None):
        LOG.info("Signal %s received; cancelling cycle...", signum)
        cancel.set()

    previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}

    scanner = build_scanner(settings)
    try:
        report, run_id = _runner.run_cycle_once(scanner, trigger_type="adhoc", cancel=cancel)
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.scan_once",
            "overrides": overrides,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        return 1
    finally:
        scanner.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    print(json.dumps({"run_id": run_id, **report.as_dict()}, indent=2))
    return 130 if report.cancelled else 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler loop in a daemon-like fashion until a termination
    signal is received.
    """
    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(config_path=args.config)
        LOG.info("Scheduler started: %r", running.sched)

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except _config_schema.ConfigError as e:
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def cmd_blacklist(args: argparse.Namespace) -> int:
    try:
        store = _open_store(args)
        if args.action == "add":
            store.add_blacklist(Identity(args.name, args.realm), args.reason)
            print(f"Blacklisted {args.name}-{args.realm}.")
            return 0
        if args.action == "remove":
            if store.remove_blacklist(Identity(args.name, args.realm)):
                print(f"Removed {args.name}-{args.realm} from the blacklist.")
                return 0
            print(f"{args.name}-{args.realm} is not blacklisted.", file=sys.stderr)
            return 1

        rows = [(str(r.identity), r.reason or "", r.blacklisted_at.isoformat()) for r in store.list_blacklist()]
        if not rows:
            print("Blacklist is empty.")
            return 0
        _print_table(rows, headers=("PLAYER", "REASON", "SINCE"))
        return 0
    except (_config_schema.ConfigError, StoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def cmd_stats(args: argparse.Namespace) -> int:
    try:
        store = _open_store(args)
        rows = [
            ("seen_players", str(store.count_seen())),
            ("blacklisted_players", str(len(store.list_blacklist()))),
            ("sqlite_path", store.sqlite_path),
        ]
    except (_config_schema.ConfigError, StoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    _print_table(rows, headers=("STAT", "VALUE"))
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args.config)
        days = args.days if args.days is not None else settings.retention_days
        if days < 1:
            print("ERROR: --days must be >= 1", file=sys.stderr)
            return 2
        cutoff = utcnow() - timedelta(days=days)
        n = SeenStore(settings.sqlite_path).purge_older_than(cutoff)
    except (_config_schema.ConfigError, StoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    L.write_activity_log({"ts": _now_iso(), "event": "cli_purge", "days": days, "purged": n})
    print(f"Purged {n} seen record(s) last listed before {cutoff.isoformat()}.")
    return 0


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler controller."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Recruit watch command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to config file (fallbacks to CONFIG_PATH env or built-in defaults).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # serve
    sp = sub.add_parser("serve", help="Run the scan loop until signalled.")
    sp.set_defaults(func=cmd_serve)

    # scan-once
    sp = sub.add_parser("scan-once", help="Run one scan cycle now and print the report.")
    sp.add_argument("--dry-run", action="store_true", help="Evaluate everything but post no notifications.")
    sp.add_argument(
        "--set",
        metavar="k=v",
        nargs="*",
        help="Override recruit_watch settings for this run (JSON values supported).",
    )
    sp.set_defaults(func=cmd_scan_once)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    # blacklist
    sp = sub.add_parser("blacklist", help="Manage the player blacklist.")
    bl = sp.add_subparsers(dest="action", required=True)
    bp = bl.add_parser("add", help="Blacklist a player.")
    bp.add_argument("name")
    bp.add_argument("realm")
    bp.add_argument("--reason", default=None)
    bp = bl.add_parser("remove", help="Remove a player from the blacklist.")
    bp.add_argument("name")
    bp.add_argument("realm")
    bl.add_parser("list", help="List blacklisted players.")
    sp.set_defaults(func=cmd_blacklist)

    # stats
    sp = sub.add_parser("stats", help="Show store counts.")
    sp.set_defaults(func=cmd_stats)

    # purge
    sp = sub.add_parser("purge", help="Delete seen records older than the retention window.")
    sp.add_argument("--days", type=int, default=None, help="Override retention_days for this sweep.")
    sp.set_defaults(func=cmd_purge)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
