# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

# Project-local interfaces
from modules.recruit_watch.lib.config import Settings
from modules.recruit_watch.lib.engine import Scanner

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

JOB_ID = "recruit_watch"


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.

    stop() sets the shared cancel event first, so an in-flight cycle winds
    down between candidates instead of running to completion.
    """

    def __init__(self, scheduler: BackgroundScheduler, scanner: Scanner, cancel: threading.Event) -> None:
        self._scheduler = scheduler
        self._scanner = scanner
        self.cancel = cancel
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        """
        Signal cancellation and promptly shut down APScheduler.
        """
        self.cancel.set()
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; the in-flight cycle sees the cancel event.
            self._scheduler.shutdown(wait=False)
        self._scanner.close()
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        if not self._scheduler:
            return []
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(
    config_path: str | None = None,
    *,
    overrides: dict[str, Any] | None = None,
    scanner: Scanner | None = None,
    cancel: threading.Event | None = None,
) -> SchedulerController:
    """
    Load configuration, build the scanner and an APScheduler instance with
    one interval job, and start.
    Returns a SchedulerController that exposes stop() and join().

    Notes:
      * APScheduler 3.x prefers a pytz scheduler timezone; we keep the
        scheduler tz as pytz to avoid surprises.
      * One cycle at a time: a single-thread executor, max_instances=1 and
        coalesce so a slow cycle never stacks missed ticks.
    """
    cfg = config_schema.load_config(config_path)
    config_schema.validate(cfg)
    tz = _resolve_timezone(cfg)

    settings = Settings.from_env_and_kwargs({**cfg[config_schema.MODULE_KEY], **(overrides or {})})
    if scanner is None:
        from modules.recruit_watch.main import build_scanner

        scanner = build_scanner(settings)
    cancel = cancel or threading.Event()

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    trigger = build_trigger(
        settings.polling_interval_minutes,
        tz,
        start_delay_seconds=int(cfg.get("start_delay_seconds") or 0),
    )
    _add_job(
        scheduler,
        trigger,
        scanner,
        cancel,
        misfire_grace_time=cfg.get("misfire_grace_seconds") or settings.polling_interval_minutes * 60,
    )

    scheduler.start()
    LOG.info(
        "Scheduler started: scanning every %d minute(s), first run in %ss.",
        settings.polling_interval_minutes,
        cfg.get("start_delay_seconds"),
    )
    return SchedulerController(scheduler, scanner, cancel)


def build_trigger(
    minutes: int,
    tz: Any,
    *,
    start_delay_seconds: int = 0,
    now: datetime | None = None,
) -> IntervalTrigger:
    """Fixed-interval trigger whose first fire is `start_delay_seconds` from now."""
    if minutes <= 0:
        raise ValueError("polling interval must be >= 1 minute")
    now = now or datetime.now(tz=tz)
    return IntervalTrigger(minutes=minutes, start_date=now + timedelta(seconds=start_delay_seconds), timezone=tz)


# ---- Helpers ----------------------------------------------------------------


def _preview_trigger(trigger, tz, count: int = 6, start=None):
    """
    Return next `count` fire times for visibility in logs.
    Deterministic: we seed previous_fire_time = now = `start` (or "now" in tz),
    then advance `now` by 1µs after each hit so the next lookup moves forward.
    """
    now = start or datetime.now(tz=tz)
    prev = None
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone(cfg: dict[str, Any]):
    """
    APScheduler 3.x expects a pytz timezone. We accept either:
    - config['timezone'] (e.g., 'Europe/Berlin')
    - env TZ
    - default to UTC
    """
    import pytz

    tz_name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid or missing tz '%s')", tz_name)
        return pytz.UTC


def _add_job(
    scheduler: BackgroundScheduler,
    trigger: IntervalTrigger,
    scanner: Scanner,
    cancel: threading.Event,
    *,
    misfire_grace_time: int | None = None,
) -> None:
    """
    Register the scan job with a wrapper that:

      - Skips the tick once cancellation is requested
      - Logs start/finish + duration
      - Executes one cycle via ``runner.run_cycle_once()``
      - Catches every exception so the next tick is always scheduled
      - Writes a structured activity record per run
    """

    def _job_wrapper():
        if cancel.is_set():
            return
        started = _time.monotonic()
        LOG.info("Job[%s] starting", JOB_ID)

        try:
            report, run_id = runner.run_cycle_once(
                scanner,
                trigger_type="scheduled",
                cancel=cancel,
                job_context=_build_job_context(),
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", JOB_ID)
            _write_activity(status="error", duration_s=_time.monotonic() - started)
            return

        duration = _time.monotonic() - started
        LOG.info(
            "Job[%s] finished in %.3fs: fetched=%d accepted=%d notified=%d errored=%d",
            JOB_ID,
            duration,
            report.fetched,
            report.accepted,
            report.notified,
            report.errored,
        )
        _write_activity(status="cancelled" if report.cancelled else "ok", duration_s=duration, run_id=run_id)

    if os.getenv("SCHEDULER_PREVIEW", None) == "1":
        preview = _preview_trigger(trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("PREVIEW[%s]: %s", JOB_ID, ", ".join(t.isoformat() for t in preview) if preview else "(none)")

    scheduler.add_job(
        func=_job_wrapper,
        trigger=trigger,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=misfire_grace_time,
        # First run at start_date exactly, even if it has already passed.
        next_run_time=trigger.start_date,
        replace_existing=True,
    )

    job = scheduler.get_job(JOB_ID)
    nrt = getattr(job, "next_run_time", None) if job else None
    if nrt:
        LOG.info("Registered job[%s] next_run_time=%s", JOB_ID, nrt.isoformat())


def _write_activity(status: str, duration_s: float, run_id: str | None = None) -> None:
    """Best-effort activity logging; non-fatal on errors."""
    try:
        write_activity_log({
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": JOB_ID,
                "run_id": run_id,
                "status": status,
                "duration_ms": int(duration_s * 1000),
            },
        })
    except OSError:
        LOG.debug("write_activity_log failed for job[%s]", JOB_ID, exc_info=True)


def _build_job_context() -> dict:
    from datetime import timezone

    return {
        "job_id": JOB_ID,
        "now_iso": datetime.now(timezone.utc).isoformat(),
    }
