"""
Scan engine: one polling cycle of the recruit watch pipeline.

Per cycle:
  - Fetch the listing batch (a collector failure means an empty batch)
  - Novelty gate via `novelty.filter_batch` (durable, CAS-backed)
  - Per accepted candidate, sequentially: enrich + evaluate, pace, summarize,
    dispatch. One candidate's failure never stops the others.
  - Retention sweep, always, even for empty or cancelled cycles
  - One summary record via `logging_bridge`

Cancellation is a single threading.Event threaded through every call.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from . import logging_bridge, render
from .aggregator import EnrichmentAggregator
from .db import SeenStore
from .models import CycleReport, EnrichedCandidate, Identity, RawCandidate
from .notify import DiscordNotifier, NotificationError
from .novelty import filter_batch
from .sources.base import Cancelled, ListingCollector
from .summarize import Summarizer
from .utils import utcnow

LOG = logging.getLogger(__name__)


class Scanner:
    def __init__(
        self,
        *,
        store: SeenStore,
        collector: ListingCollector,
        aggregator: EnrichmentAggregator,
        notifier: DiscordNotifier | None = None,
        summarizer: Summarizer | None = None,
        retention_days: int = 30,
        dispatch_delay_s: float = 5.0,
        notify_rejections: bool = False,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.collector = collector
        self.aggregator = aggregator
        self.notifier = notifier
        self.summarizer = summarizer
        self.retention_days = retention_days
        self.dispatch_delay_s = dispatch_delay_s
        self.notify_rejections = notify_rejections
        self.dry_run = dry_run
        self._clock = clock
        self._warned_no_notifier = False

    # =========================================================================
    # CYCLE
    # =========================================================================
    def run_cycle(self, cancel: threading.Event | None = None) -> CycleReport:
        cancel = cancel or threading.Event()
        start_ns = time.perf_counter_ns()
        report = CycleReport()

        try:
            batch = self._fetch_batch(cancel, report)
            report.fetched = len(batch)

            if cancel.is_set():
                report.cancelled = True
                accepted: list[RawCandidate] = []
            else:
                accepted = filter_batch(
                    self.store,
                    batch,
                    tally=report.novelty,
                    cutoff=self.retention_cutoff(),
                    cancel=cancel,
                )
            report.accepted = len(accepted)

            if accepted and self.notifier is None and not self.dry_run:
                self._warn_no_notifier()

            dispatched: set[Identity] = set()
            for cand in accepted:
                if cancel.is_set():
                    report.cancelled = True
                    break
                if cand.identity in dispatched:
                    continue
                try:
                    self._process(cand, cancel, report, dispatched)
                except Exception as e:
                    report.errored += 1
                    LOG.warning("candidate %s failed: %r", cand.identity, e)
                    logging_bridge.error({
                        "component": "recruit_watch.engine",
                        "op": "process_candidate",
                        "candidate": str(cand.identity),
                        "listed_at": cand.listed_at.isoformat(),
                        "error": repr(e),
                    })
        finally:
            report.purged = self.purge()
            report.cancelled = report.cancelled or cancel.is_set()
            report.duration_ms = int((time.perf_counter_ns() - start_ns) // 1_000_000)
            logging_bridge.activity({
                "component": "recruit_watch.engine",
                "op": "summary",
                **report.as_dict(),
            })
        return report

    def retention_cutoff(self, now: datetime | None = None) -> datetime:
        """Seen records and listings older than this are outside the dedup window."""
        return (now or self._clock()) - timedelta(days=self.retention_days)

    def purge(self, now: datetime | None = None) -> int:
        """Retention sweep. Failures are logged and reported as 0 purged."""
        cutoff = self.retention_cutoff(now)
        try:
            n = self.store.purge_older_than(cutoff)
        except Exception as e:
            LOG.warning("retention sweep failed: %r", e)
            logging_bridge.error({
                "component": "recruit_watch.engine",
                "op": "purge",
                "cutoff": cutoff.isoformat(),
                "error": repr(e),
            })
            return 0
        if n:
            LOG.info("Purged %d seen records older than %s", n, cutoff.isoformat())
        return n

    def close(self) -> None:
        self.aggregator.close()
        self.collector.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================
    def _fetch_batch(self, cancel: threading.Event, report: CycleReport) -> list[RawCandidate]:
        try:
            return self.collector.fetch_batch(cancel)
        except Cancelled:
            report.cancelled = True
            return []
        except Exception as e:
            LOG.warning("listing fetch failed: %r", e)
            logging_bridge.error({
                "component": "recruit_watch.engine",
                "op": "fetch_batch",
                "collector": self.collector.kind,
                "error": repr(e),
            })
            return []

    def _process(
        self,
        cand: RawCandidate,
        cancel: threading.Event,
        report: CycleReport,
        dispatched: set[Identity],
    ) -> None:
        verdict, enriched = self.aggregator.enrich_and_evaluate(cand, cancel)
        if cancel.is_set():
            # Partial data from an interrupted gather is not a verdict.
            report.cancelled = True
            return

        if not verdict.accepted:
            report.rejected_by_rule[verdict.rule or "unknown"] += 1
            LOG.info("Rejected %s (%s): %s", cand.identity, verdict.rule, verdict.reason)
            if self.notify_rejections:
                self._send_rejection(cand, verdict.reason or "")
            return

        report.eligible += 1

        if self.dispatch_delay_s > 0 and cancel.wait(self.dispatch_delay_s):
            report.cancelled = True
            return

        if self.summarizer is not None:
            enriched = enriched.with_summary(self.summarizer.summarize(render.summary_text(enriched)))

        if self._dispatch(enriched):
            dispatched.add(cand.identity)
            report.notified += 1

    def _dispatch(self, enriched: EnrichedCandidate) -> bool:
        """True when a card went out. NotificationError propagates."""
        ident = str(enriched.candidate.identity)
        if self.dry_run:
            logging_bridge.activity({"component": "recruit_watch.engine", "op": "dry_run_dispatch", "candidate": ident})
            return False
        if self.notifier is None:
            return False
        self.notifier.dispatch(enriched)
        logging_bridge.activity({"component": "recruit_watch.engine", "op": "dispatched", "candidate": ident})
        return True

    def _send_rejection(self, cand: RawCandidate, reason: str) -> None:
        if self.dry_run or self.notifier is None:
            return
        try:
            self.notifier.dispatch_rejection(cand, reason)
        except NotificationError as e:
            LOG.warning("filtered-out notice for %s failed: %s", cand.identity, e)
            logging_bridge.error({
                "component": "recruit_watch.engine",
                "op": "dispatch_rejection",
                "candidate": str(cand.identity),
                "error": repr(e),
            })

    def _warn_no_notifier(self) -> None:
        if self._warned_no_notifier:
            return
        self._warned_no_notifier = True
        LOG.warning("No Discord webhook configured; notifications are dropped")
        logging_bridge.error({
            "component": "recruit_watch.engine",
            "op": "config",
            "error": "notification target missing; notifications dropped",
        })
