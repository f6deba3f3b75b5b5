# tests/conftest.py
import json
import os
import tempfile
import threading
import time
from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from modules.recruit_watch.lib.db import SeenStore, reset_db
from modules.recruit_watch.lib.models import RaidCurveEntry, RaiderIOProfile, RawCandidate
from modules.recruit_watch.lib.sources.base import EnrichmentClient, ListingCollector, check_cancel


_SECRET_ENVS = (
    "RAIDERIO_API_KEY",
    "WCL_CLIENT_ID",
    "WCL_CLIENT_SECRET",
    "BLIZZARD_CLIENT_ID",
    "BLIZZARD_CLIENT_SECRET",
    "DISCORD_WEBHOOK_URL",
    "OPENAI_API_KEY",
)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="rw-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("LLM_MD_ENABLE", raising=False)
    # Never pick up real credentials from the developer's shell
    for name in _SECRET_ENVS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-12-20T00:00:00Z"):
        yield


def read_jsonl(path):
    if not os.path.exists(path):
        return []
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


# ---------------------------------------------------------------------
# Store + candidates
# ---------------------------------------------------------------------
@pytest.fixture
def db_path(tmp_path):
    p = str(tmp_path / "recruitwatch.db")
    reset_db(p)
    return p


@pytest.fixture
def store(db_path):
    return SeenStore(db_path)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_candidate():
    def _make(name="Testplayer", realm="Draenor", listed_at=None, item_level=728.5, class_name="paladin", **kw):
        return RawCandidate(
            character_name=name,
            realm=realm,
            class_name=class_name,
            item_level=item_level,
            listed_at=listed_at or utc(2025, 12, 18),
            profile_url=kw.pop("profile_url", f"https://www.wowprogress.com/character/eu/{realm.lower()}/{name}"),
            realm_slug=kw.pop("realm_slug", realm.lower().replace(" ", "-")),
            region=kw.pop("region", "eu"),
        )

    return _make


def rio_profile(ce_raids=(), aotc_raids=()) -> RaiderIOProfile:
    curve = [RaidCurveEntry(raid=r, cutting_edge=utc(2025, 4, 1)) for r in ce_raids]
    curve += [RaidCurveEntry(raid=r, aotc=utc(2025, 3, 20)) for r in aotc_raids]
    return RaiderIOProfile(
        name="Testplayer",
        realm="Draenor",
        region="eu",
        class_name="Paladin",
        profile_url="https://raider.io/characters/eu/draenor/Testplayer",
        progression={"Liberation Of Undermine": "8/8 M"},
        raid_achievement_curve=curve,
    )


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------
class FakeClient(EnrichmentClient):
    """Returns `value`, raises `exc`, or sleeps `delay` seconds first."""

    kind = "fake"

    def __init__(self, value=None, exc=None, delay=0.0):
        self.value = value
        self.exc = exc
        self.delay = delay
        self.calls = 0

    def fetch(self, candidate, cancel=None):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        check_cancel(cancel)
        if self.exc is not None:
            raise self.exc
        return self.value


class FakeCollector(ListingCollector):
    kind = "fake"

    def __init__(self, batch=(), detail=None, exc=None):
        self.batch = list(batch)
        self.detail = detail
        self.exc = exc
        self.detail_calls = []
        self.closed = False

    def fetch_batch(self, cancel=None):
        check_cancel(cancel)
        if self.exc is not None:
            raise self.exc
        return list(self.batch)

    def fetch_detail(self, candidate, cancel=None):
        self.detail_calls.append(candidate.character_name)
        return self.detail

    def close(self):
        self.closed = True


class RecordingNotifier:
    def __init__(self, fail_for=(), exc=None):
        self.sent = []
        self.rejections = []
        self.fail_for = set(fail_for)
        self.exc = exc
        self.lock = threading.Lock()

    def dispatch(self, enriched):
        name = enriched.candidate.character_name
        if name in self.fail_for:
            raise self.exc or RuntimeError(f"boom for {name}")
        with self.lock:
            self.sent.append(enriched)

    def dispatch_rejection(self, candidate, reason):
        if self.exc is not None:
            raise self.exc
        self.rejections.append((candidate.character_name, reason))


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    """A JSON service config running on the bundled test listing."""
    cfg = {
        "timezone": "UTC",
        "start_delay_seconds": 0,
        "recruit_watch": {
            "sqlite_path": str(tmp_path / "state" / "rw.db"),
            "use_test_data": True,
            "sources": [],
            "allow_missing_progression": True,
            "dispatch_delay_seconds": 0,
            "retention_days": 36500,
        },
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p
