from __future__ import annotations

import functools
import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

from .eligibility import DETAIL, LISTING, PROFILE, Rule, evaluate
from .logging_bridge import activity as log_activity
from .models import EnrichedCandidate, RawCandidate, SourceResult, Verdict
from .sources.base import Cancelled, EnrichmentClient, ListingCollector

LOG = logging.getLogger(__name__)

DETAIL_SOURCE = "detail"

# How often a blocked wait re-checks the cancel event.
_POLL_S = 0.25


class EnrichmentAggregator:
    """
    Gathers every configured enrichment source for one candidate and runs
    the eligibility chain around it:

      listing rules -> fan-out to clients -> profile rules
                    -> detail page fetch  -> detail rules

    Each candidate gets its own short-lived pool, so a call that outlives
    its deadline cannot hold up the next candidate's sources. Each call is
    bounded by `timeout_s` measured from when it starts running. A source
    whose previous call is still running is skipped ("busy") rather than
    stacked. A client that times out, raises, is cancelled or finds nothing
    yields an absent SourceResult; the candidate is never failed because a
    source is down.
    """

    def __init__(
        self,
        clients: Mapping[str, EnrichmentClient],
        rules: Sequence[Rule],
        *,
        collector: ListingCollector | None = None,
        http: Any = None,
        timeout_s: float = 20.0,
        max_workers: int = 4,
    ) -> None:
        self.clients = dict(clients)
        self.rules = list(rules)
        self.collector = collector
        self._http = http
        self.timeout_s = float(timeout_s)
        self.max_workers = max(1, int(max_workers))
        self._in_flight: dict[str, Future] = {}

    # ---- public ----

    def enrich_and_evaluate(
        self,
        candidate: RawCandidate,
        cancel: threading.Event | None = None,
    ) -> tuple[Verdict, EnrichedCandidate]:
        enriched = EnrichedCandidate(candidate=candidate)

        verdict = evaluate(self.rules, enriched, LISTING)
        if not verdict.accepted:
            self._log(enriched, verdict)
            return verdict, enriched

        enriched = EnrichedCandidate(candidate=candidate, profiles=self.gather(candidate, cancel))
        verdict = evaluate(self.rules, enriched, PROFILE)
        if not verdict.accepted:
            self._log(enriched, verdict)
            return verdict, enriched

        if self.collector is not None:
            enriched = enriched.with_detail(self.fetch_detail(candidate, cancel))
        verdict = evaluate(self.rules, enriched, DETAIL)
        self._log(enriched, verdict)
        return verdict, enriched

    def gather(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> dict[str, SourceResult]:
        """Fan out to every client; results keyed by client name in configured order."""
        calls = {name: functools.partial(client.fetch, candidate, cancel) for name, client in self.clients.items()}
        return self._run(calls, cancel)

    def fetch_detail(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> SourceResult:
        if self.collector is None:
            return SourceResult.missing(DETAIL_SOURCE, "not configured")
        calls = {DETAIL_SOURCE: functools.partial(self.collector.fetch_detail, candidate, cancel)}
        return self._run(calls, cancel)[DETAIL_SOURCE]

    def close(self) -> None:
        """Forget in-flight calls and close the HTTP client handed in, if any."""
        self._in_flight.clear()
        if self._http is not None:
            self._http.close()

    # ---- internals ----

    def _run(self, calls: Mapping[str, Callable[[], Any]], cancel: threading.Event | None) -> dict[str, SourceResult]:
        results: dict[str, SourceResult] = {}
        runnable: dict[str, Callable[[], Any]] = {}
        for name, call in calls.items():
            prev = self._in_flight.get(name)
            if prev is not None and not prev.done():
                LOG.warning("%s: previous call still running; skipping", name)
                results[name] = SourceResult.missing(name, "busy")
            else:
                runnable[name] = call

        if runnable:
            workers = min(self.max_workers, len(runnable))
            started: dict[str, float] = {}
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="enrich")
            try:
                futures = {name: pool.submit(_timed, started, name, call) for name, call in runnable.items()}
                self._in_flight.update(futures)
                self._wait_all(futures, started, workers, cancel)
            finally:
                # Never joins: a call past its deadline keeps running on its own thread.
                pool.shutdown(wait=False, cancel_futures=True)
            for name, fut in futures.items():
                results[name] = _to_result(name, fut, cancel)

        return {name: results[name] for name in calls}

    def _wait_all(
        self,
        futures: Mapping[str, Future],
        started: Mapping[str, float],
        workers: int,
        cancel: threading.Event | None,
    ) -> None:
        """
        Block until every call has finished or run past `timeout_s` since it
        started, or cancel is set. Calls still queued when every worker is
        stuck on an expired call are left for the caller to cancel.
        """
        names = {fut: name for name, fut in futures.items()}
        pending = set(futures.values())
        while pending:
            if cancel is not None and cancel.is_set():
                return
            now = time.monotonic()
            running = [f for f in pending if names[f] in started]
            live = [f for f in running if now - started[names[f]] < self.timeout_s]
            queued = len(pending) - len(running)
            if not live and (queued == 0 or len(running) >= workers):
                return
            wake = min((started[names[f]] + self.timeout_s - now for f in live), default=_POLL_S)
            wait(pending, timeout=max(0.0, min(wake, _POLL_S)), return_when=FIRST_COMPLETED)
            pending = {f for f in pending if not f.done()}

    def _log(self, enriched: EnrichedCandidate, verdict: Verdict) -> None:
        sources = {name: ("ok" if r.present else r.error) for name, r in enriched.profiles.items()}
        if enriched.detail is not None:
            sources[DETAIL_SOURCE] = "ok" if enriched.detail.present else enriched.detail.error
        log_activity({
            "component": "recruit_watch.aggregator",
            "op": "enrich_and_evaluate",
            "candidate": str(enriched.candidate.identity),
            "sources": sources,
            "accepted": verdict.accepted,
            "rule": verdict.rule,
            "reason": verdict.reason,
        })


def _timed(started: dict[str, float], name: str, call: Callable[[], Any]) -> Any:
    started[name] = time.monotonic()
    return call()


def _to_result(name: str, fut: Future, cancel: threading.Event | None) -> SourceResult:
    cancelled = cancel is not None and cancel.is_set()
    if not fut.done() or fut.cancelled():
        # Still running or never started: past its deadline unless the cycle was cancelled.
        reason = "cancelled" if cancelled else "timeout"
        LOG.warning("%s: %s", name, reason)
        return SourceResult.missing(name, reason)
    exc = fut.exception()
    if isinstance(exc, Cancelled):
        return SourceResult.missing(name, "cancelled")
    if exc is not None:
        LOG.warning("%s: fetch failed: %r", name, exc)
        return SourceResult.missing(name, repr(exc))
    value: Any = fut.result()
    if value is None:
        return SourceResult.missing(name, "not found")
    return SourceResult.ok(name, value)


def build_clients(
    names: Sequence[str],
    settings: Any,
    http: Any,
    *,
    lookup: Callable[[str], type[EnrichmentClient]] | None = None,
) -> dict[str, EnrichmentClient]:
    """
    Instantiate the named clients from the registry. Unknown names and
    clients missing credentials are skipped with a warning.
    """
    if lookup is None:
        from .sources.registry import get as lookup
    out: dict[str, EnrichmentClient] = {}
    for name in names:
        try:
            cls = lookup(name)
        except KeyError:
            LOG.warning("Unknown enrichment source %r; skipping", name)
            continue
        client = cls.from_settings(settings, http)
        if client is None:
            LOG.warning("Enrichment source %r has no credentials configured; skipping", name)
            continue
        out[name] = client
    return out
