# tests/test_runner.py
import re
import threading

import pytest
from conftest import read_jsonl

from modules.recruit_watch.lib.models import CycleReport
from service import logging_utils, runner


class _Scanner:
    def __init__(self, report=None, exc=None):
        self.report = report or CycleReport(fetched=3, accepted=1, notified=1)
        self.exc = exc
        self.cancel_seen = None

    def run_cycle(self, cancel=None):
        self.cancel_seen = cancel
        if self.exc is not None:
            raise self.exc
        return self.report


def test_run_cycle_once_records_activity(frozen_utc):
    scanner = _Scanner()
    cancel = threading.Event()
    report, run_id = runner.run_cycle_once(scanner, trigger_type="adhoc", cancel=cancel, job_context={"job_id": "x"})

    assert report is scanner.report
    assert scanner.cancel_seen is cancel
    assert re.match(r"^[a-f0-9]{32}$", run_id)

    (rec,) = [r for r in read_jsonl(logging_utils.get_activity_log_path()) if r.get("run_id") == run_id]
    assert rec["ok"] is True
    assert rec["module"] == "recruit_watch"
    assert rec["trigger_type"] == "adhoc"
    assert rec["context"]["job_id"] == "x"
    assert rec["meta"]["fetched"] == 3


def test_run_cycle_once_reraises_and_records():
    scanner = _Scanner(exc=RuntimeError("store exploded"))
    with pytest.raises(RuntimeError, match="store exploded"):
        runner.run_cycle_once(scanner)

    (rec,) = [r for r in read_jsonl(logging_utils.get_activity_log_path()) if r.get("module") == "recruit_watch"]
    assert rec["ok"] is False
    assert "store exploded" in rec["message"]
    assert rec["meta"] == {"exception_type": "RuntimeError"}


def test_normalize_overrides():
    out = runner.normalize_overrides([
        "dry_run=true",
        "polling_interval_minutes=10",
        "min_item_level=715.5",
        'eligible_tiers=["Manaforge Omega"]',
        "required_language=english",
        "region = eu",
    ])
    assert out == {
        "dry_run": True,
        "polling_interval_minutes": 10,
        "min_item_level": 715.5,
        "eligible_tiers": ["Manaforge Omega"],
        "required_language": "english",
        "region": "eu",
    }


def test_normalize_overrides_rejects_bare_words():
    with pytest.raises(ValueError):
        runner.normalize_overrides(["dry_run"])
    assert runner.normalize_overrides(None) == {}
