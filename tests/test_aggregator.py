# tests/test_aggregator.py
import threading
import time

import pytest
from conftest import FakeClient, FakeCollector, read_jsonl, rio_profile

from modules.recruit_watch.lib import eligibility as el
from modules.recruit_watch.lib.aggregator import DETAIL_SOURCE, EnrichmentAggregator, build_clients
from modules.recruit_watch.lib.config import Settings
from modules.recruit_watch.lib.models import DetailProfile
from modules.recruit_watch.lib.sources.base import EnrichmentClient
from service import logging_utils


@pytest.fixture
def make_aggregator():
    made = []

    def _make(clients, rules=None, **kw):
        agg = EnrichmentAggregator(
            clients,
            rules if rules is not None else [el.requires_tier_achievement(["Liberation Of Undermine"])],
            **kw,
        )
        made.append(agg)
        return agg

    yield _make
    for agg in made:
        agg.close()


def test_two_of_three_sources_failing_still_accepts(make_aggregator, make_candidate):
    agg = make_aggregator({
        "raiderio": FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"])),
        "warcraftlogs": FakeClient(exc=RuntimeError("503 from upstream")),
        "armory": FakeClient(value=None),
    })
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())

    assert verdict.accepted
    assert enriched.profiles["raiderio"].present
    assert not enriched.profiles["warcraftlogs"].present
    assert "503 from upstream" in enriched.profiles["warcraftlogs"].error
    assert enriched.profiles["armory"].error == "not found"


def test_results_keep_configured_order(make_aggregator, make_candidate):
    agg = make_aggregator({
        "b": FakeClient(value=1, delay=0.05),
        "a": FakeClient(value=2),
        "c": FakeClient(value=3),
    })
    assert list(agg.gather(make_candidate())) == ["b", "a", "c"]


def test_slow_source_times_out(make_aggregator, make_candidate):
    agg = make_aggregator(
        {"raiderio": FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"])), "slow": FakeClient(value=1, delay=1.0)},
        timeout_s=0.2,
    )
    started = time.monotonic()
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())

    assert time.monotonic() - started < 0.9
    assert enriched.profiles["slow"].error == "timeout"
    assert verdict.accepted


def test_hung_source_does_not_starve_healthy_sources(make_aggregator, make_candidate):
    hung = FakeClient(value=1, delay=2.0)
    agg = make_aggregator(
        {
            "hung": hung,
            "raiderio": FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"])),
            "armory": FakeClient(value="ok"),
        },
        timeout_s=0.2,
        max_workers=4,
    )

    outcomes = []
    for name in ["Alpha", "Bravo", "Charlie", "Delta", "Echo"]:
        verdict, enriched = agg.enrich_and_evaluate(make_candidate(name))
        outcomes.append((verdict.accepted, {n: ("ok" if r.present else r.error) for n, r in enriched.profiles.items()}))

    assert outcomes[0] == (True, {"hung": "timeout", "raiderio": "ok", "armory": "ok"})
    # one stuck call at a time; later candidates skip the source instead of queueing behind it
    assert outcomes[1:] == [(True, {"hung": "busy", "raiderio": "ok", "armory": "ok"})] * 4
    assert hung.calls == 1


def test_deadline_starts_when_the_call_runs(make_aggregator, make_candidate):
    agg = make_aggregator({"a": FakeClient(value=1, delay=0.15), "b": FakeClient(value=2, delay=0.15)}, timeout_s=0.25, max_workers=1)
    results = agg.gather(make_candidate())
    assert results["a"].value == 1
    assert results["b"].value == 2


def test_call_queued_behind_a_stuck_worker_is_a_timeout(make_aggregator, make_candidate):
    agg = make_aggregator({"hung": FakeClient(value=1, delay=1.0), "fast": FakeClient(value=2)}, timeout_s=0.1, max_workers=1)
    started = time.monotonic()
    results = agg.gather(make_candidate())

    assert time.monotonic() - started < 0.6
    assert results["hung"].error == "timeout"
    assert results["fast"].error == "timeout"


def test_cancel_interrupts_gather(make_aggregator, make_candidate):
    agg = make_aggregator({"slow": FakeClient(value=1, delay=1.0)}, timeout_s=10)
    cancel = threading.Event()
    threading.Timer(0.1, cancel.set).start()

    started = time.monotonic()
    results = agg.gather(make_candidate(), cancel)

    assert time.monotonic() - started < 0.9
    assert results["slow"].error == "cancelled"


def test_client_seeing_cancel_reports_cancelled(make_aggregator, make_candidate):
    agg = make_aggregator({"raiderio": FakeClient(value=1)})
    cancel = threading.Event()
    cancel.set()
    results = agg.gather(make_candidate(), cancel)
    assert results["raiderio"].error == "cancelled"


def test_detail_fetched_only_after_profile_rules_pass(make_aggregator, make_candidate):
    collector = FakeCollector(detail=DetailProfile(languages="German"))
    agg = make_aggregator(
        {"raiderio": FakeClient(value=rio_profile(ce_raids=["Nerubar Palace"]))},
        rules=[el.requires_tier_achievement(["Liberation Of Undermine"]), el.requires_language("english")],
        collector=collector,
    )
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())
    assert verdict.rule == "tier"
    assert collector.detail_calls == []
    assert enriched.detail is None


def test_detail_rules_run_on_detail_page(make_aggregator, make_candidate):
    collector = FakeCollector(detail=DetailProfile(languages="German"))
    agg = make_aggregator(
        {"raiderio": FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"]))},
        rules=[el.requires_tier_achievement(["Liberation Of Undermine"]), el.requires_language("english")],
        collector=collector,
    )
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())
    assert collector.detail_calls == ["Testplayer"]
    assert verdict.rule == "language"
    assert enriched.detail_profile.languages == "German"


def test_missing_detail_page_is_absent_not_fatal(make_aggregator, make_candidate):
    collector = FakeCollector(detail=None)
    agg = make_aggregator(
        {"raiderio": FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"]))},
        rules=[el.requires_tier_achievement(["Liberation Of Undermine"]), el.requires_language("english")],
        collector=collector,
    )
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())
    assert verdict.accepted
    assert enriched.detail.source == DETAIL_SOURCE
    assert enriched.detail.error == "not found"


def test_listing_rules_skip_enrichment(make_aggregator, make_candidate):
    client = FakeClient(value=rio_profile(ce_raids=["Liberation Of Undermine"]))
    agg = make_aggregator({"raiderio": client}, rules=[el.min_item_level(730)])
    verdict, enriched = agg.enrich_and_evaluate(make_candidate(item_level=700))
    assert verdict.rule == "min_item_level"
    assert client.calls == 0
    assert enriched.profiles == {}


def test_no_clients_yields_empty_profiles(make_aggregator, make_candidate):
    agg = make_aggregator({}, rules=[el.requires_tier_achievement(["Manaforge Omega"], allow_missing=True)])
    verdict, enriched = agg.enrich_and_evaluate(make_candidate())
    assert verdict.accepted
    assert enriched.profiles == {}


def test_each_evaluation_is_logged(make_aggregator, make_candidate):
    agg = make_aggregator({"warcraftlogs": FakeClient(exc=RuntimeError("down"))})
    agg.enrich_and_evaluate(make_candidate())
    records = [r for r in read_jsonl(logging_utils.get_activity_log_path()) if r.get("op") == "enrich_and_evaluate"]
    assert len(records) == 1
    assert records[0]["accepted"] is False
    assert records[0]["rule"] == "tier"
    assert "down" in records[0]["sources"]["warcraftlogs"]


# ---------------------------------------------------------------------
# build_clients
# ---------------------------------------------------------------------
class _NeedsCreds(EnrichmentClient):
    kind = "needs_creds"

    @classmethod
    def from_settings(cls, settings, http):
        return None

    def fetch(self, candidate, cancel=None):
        return None


class _Always(EnrichmentClient):
    kind = "always"

    @classmethod
    def from_settings(cls, settings, http):
        return cls()

    def fetch(self, candidate, cancel=None):
        return None


def test_build_clients_skips_unknown_and_uncredentialed():
    table = {"needs_creds": _NeedsCreds, "always": _Always}

    def lookup(name):
        return table[name]

    out = build_clients(["always", "nope", "needs_creds"], Settings(), None, lookup=lookup)
    assert list(out) == ["always"]


def test_build_clients_from_registry_without_credentials():
    # Raider.IO works keyless; the OAuth-backed sources are skipped
    out = build_clients(["raiderio", "warcraftlogs", "armory"], Settings.from_env_and_kwargs({}), http=object())
    assert list(out) == ["raiderio"]
