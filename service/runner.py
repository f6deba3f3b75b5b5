# service/runner.py
from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any

from modules.recruit_watch.lib.engine import Scanner
from modules.recruit_watch.lib.models import CycleReport
from service.logging_utils import write_activity_log

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _maybe_bool(v: Any) -> Any:
    if isinstance(v, str):
        low = v.strip().lower()
        if low in ("true", "t", "yes", "y"):
            return True
        if low in ("false", "f", "no", "n"):
            return False
    return v


def _maybe_number(v: Any) -> Any:
    if isinstance(v, str):
        s = v.strip()
        if s and (s.isdigit() or (s.startswith("-") and s[1:].isdigit())):
            return int(s)
        try:
            return float(s)
        except ValueError:
            pass
    return v


def normalize_overrides(pairs: list[str] | None) -> dict[str, Any]:
    """
    Turn CLI "key=value" pairs into module kwargs:

      - JSON-looking values ({...} or [...]) are parsed
      - else common bool/number string forms are coerced
      - everything else stays a string

    Raises ValueError on a pair without '='.
    """
    out: dict[str, Any] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Override must look like key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        s = raw.strip()
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                out[key.strip()] = json.loads(s)
                continue
            except json.JSONDecodeError:
                pass  # fall through to bool/number coercion
        out[key.strip()] = _maybe_number(_maybe_bool(s))
    return out


def _emit_activity_jsonl(record: dict[str, Any]) -> None:
    try:
        write_activity_log(record)
    except OSError as e:
        log.error("Failed to write activity JSONL: %s", e)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def run_cycle_once(
    scanner: Scanner,
    *,
    trigger_type: str = "scheduled",
    cancel: threading.Event | None = None,
    job_context: dict[str, object] | None = None,  # e.g., {"job_id": "...", "now_iso": "..."}
) -> tuple[CycleReport, str]:
    """
    Execute one scan cycle and record it.

    Returns:
        (report, run_id)
    Raises:
        Propagates exceptions from the cycle (caller/CLI will catch and log).
    """
    run_id = uuid.uuid4().hex
    context: dict[str, Any] = {
        "run_id": run_id,
        "trigger_type": trigger_type,
        "started_at": now_iso(),
    }
    if job_context:
        context.update({k: v for k, v in job_context.items() if k not in context})

    report: CycleReport | None = None
    exc: BaseException | None = None
    t0 = datetime.now()
    try:
        report = scanner.run_cycle(cancel)
    except BaseException as e:
        exc = e
    duration_ms = int((datetime.now() - t0).total_seconds() * 1000)

    record: dict[str, Any] = {
        "ts": now_iso(),
        "run_id": run_id,
        "module": "recruit_watch",
        "trigger_type": trigger_type,
        "ok": exc is None,
        "message": "OK" if exc is None else repr(exc),
        "duration_ms": duration_ms,
        "context": context,
        "meta": report.as_dict() if report is not None else {"exception_type": type(exc).__name__},
    }
    _emit_activity_jsonl(record)

    # Re-raise so the scheduler/CLI can log it and pick an exit code
    if exc is not None:
        raise exc

    assert report is not None
    return report, run_id
