# tests/test_scheduler.py
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
import pytz
from conftest import read_jsonl

from modules.recruit_watch.lib.models import CycleReport
from service import logging_utils, scheduler

# Helpers ----------------------------------------------------------------------


class _Scanner:
    def __init__(self, exc=None):
        self.exc = exc
        self.ran = threading.Event()
        self.closed = False
        self.cancel_seen = None

    def run_cycle(self, cancel=None):
        self.cancel_seen = cancel
        self.ran.set()
        if self.exc is not None:
            raise self.exc
        return CycleReport(fetched=2, accepted=1)

    def close(self):
        self.closed = True


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


# Tests ------------------------------------------------------------------------


def test_build_trigger_interval_and_start_delay():
    now = datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    trig = scheduler.build_trigger(5, pytz.UTC, start_delay_seconds=10, now=now)
    assert trig.interval.total_seconds() == 300

    times = scheduler._preview_trigger(trig, pytz.UTC, count=3, start=now)
    assert times[0] == now + timedelta(seconds=10)
    assert times[1] == now + timedelta(seconds=10, minutes=5)
    assert times[2] == now + timedelta(seconds=10, minutes=10)


def test_build_trigger_rejects_zero_interval():
    with pytest.raises(ValueError):
        scheduler.build_trigger(0, pytz.UTC)


def test_resolve_timezone_falls_back_to_utc():
    assert scheduler._resolve_timezone({"timezone": "Europe/Berlin"}).zone == "Europe/Berlin"
    assert scheduler._resolve_timezone({"timezone": "Nowhere/Special"}) is pytz.UTC


def test_start_runs_cycle_and_stop_cancels(write_min_config):
    scanner = _Scanner()
    ctl = scheduler.start(scanner=scanner)
    try:
        assert list(ctl.get_job_ids()) == [scheduler.JOB_ID]
        assert scanner.ran.wait(5.0)
        assert scanner.cancel_seen is ctl.cancel
    finally:
        ctl.stop()

    assert ctl.join(timeout=1.0)
    assert ctl.cancel.is_set()
    assert scanner.closed

    assert _wait_for(
        lambda: any(
            r.get("event") == "job_run" and r["fields"]["status"] == "ok"
            for r in read_jsonl(logging_utils.get_activity_log_path())
        )
    )


def test_failing_cycle_does_not_kill_the_job(write_min_config):
    scanner = _Scanner(exc=RuntimeError("boom"))
    ctl = scheduler.start(scanner=scanner)
    try:
        assert scanner.ran.wait(5.0)
        assert _wait_for(
            lambda: any(
                r.get("event") == "job_run" and r["fields"]["status"] == "error"
                for r in read_jsonl(logging_utils.get_activity_log_path())
            )
        )
        # the job stays registered for the next tick
        assert list(ctl.get_job_ids()) == [scheduler.JOB_ID]
    finally:
        ctl.stop()


def test_overrides_reach_settings(write_min_config, monkeypatch):
    seen = {}

    def fake_build_scanner(settings):
        seen["settings"] = settings
        return _Scanner()

    monkeypatch.setattr("modules.recruit_watch.main.build_scanner", fake_build_scanner)
    ctl = scheduler.start(overrides={"polling_interval_minutes": 7})
    try:
        assert seen["settings"].polling_interval_minutes == 7
        assert seen["settings"].use_test_data is True
    finally:
        ctl.stop()
