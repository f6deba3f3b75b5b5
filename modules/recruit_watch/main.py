from __future__ import annotations

import threading
from typing import Any

from .lib.aggregator import EnrichmentAggregator, build_clients
from .lib.config import Settings
from .lib.db import SeenStore
from .lib.eligibility import build_rules
from .lib.engine import Scanner
from .lib.http_client import SOURCE_RETRIES, HttpClient, attempt_timeout
from .lib.logging_bridge import activity as log_activity
from .lib.notify import DiscordNotifier
from .lib.sources import StubCollector, WowProgressCollector
from .lib.sources.base import ListingCollector
from .lib.summarize import Summarizer


def build_collector(settings: Settings, http: HttpClient) -> ListingCollector:
    if settings.use_test_data:
        return StubCollector(region=settings.region, limit=settings.max_candidates_per_scan)
    return WowProgressCollector(
        http,
        listing_url=settings.resolved_listing_url,
        region=settings.region,
        limit=settings.max_candidates_per_scan,
        fetcher=settings.page_fetcher,
        flaresolverr_url=settings.flaresolverr_url,
        timeout=settings.request_timeout_seconds,
    )


def build_source_http(settings: Settings) -> HttpClient:
    """HTTP client for enrichment calls: retries and timeouts fit inside one enrichment deadline."""
    return HttpClient(
        timeout=attempt_timeout(
            settings.enrichment_timeout_seconds,
            SOURCE_RETRIES,
            ceiling=settings.request_timeout_seconds,
        ),
        retries=SOURCE_RETRIES,
    )


def build_scanner(settings: Settings, *, http: HttpClient | None = None) -> Scanner:
    """Wire collector, clients, rules, notifier and summarizer from Settings."""
    source_http = None
    if http is None:
        http = HttpClient(timeout=settings.request_timeout_seconds)
        source_http = build_source_http(settings)
    collector = build_collector(settings, http)
    clients = build_clients(settings.sources, settings, source_http or http)
    aggregator = EnrichmentAggregator(
        clients,
        build_rules(settings),
        collector=collector,
        http=source_http,
        timeout_s=settings.enrichment_timeout_seconds,
        max_workers=settings.max_threads,
    )
    notifier = None
    if settings.discord_webhook_url:
        notifier = DiscordNotifier(settings.discord_webhook_url, http, timeout=settings.request_timeout_seconds)

    log_activity({
        "component": "recruit_watch.main",
        "op": "build",
        "collector": collector.kind,
        "sources": sorted(clients.keys()),
        "settings": settings.public_dict(),
    })

    return Scanner(
        store=SeenStore(settings.sqlite_path),
        collector=collector,
        aggregator=aggregator,
        notifier=notifier,
        summarizer=Summarizer.from_settings(settings),
        retention_days=settings.retention_days,
        dispatch_delay_s=settings.dispatch_delay_seconds,
        notify_rejections=settings.notify_rejections,
        dry_run=settings.dry_run,
    )


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'recruit_watch' module: one scan cycle.

    Accepts the `recruit_watch` settings block as kwargs (see
    Settings.from_env_and_kwargs), plus:
      cancel: threading.Event  # optional; stops the cycle early when set

    Returns the cycle report as a meta dict (no HTML; nothing to email).
    """
    cancel: threading.Event | None = kwargs.pop("cancel", None)
    settings = Settings.from_env_and_kwargs(kwargs)

    scanner = build_scanner(settings)
    try:
        report = scanner.run_cycle(cancel)
    finally:
        scanner.close()

    meta = report.as_dict()
    meta["message"] = f"{report.notified} notified of {report.fetched} listed ({report.accepted} new or re-listed)"
    return meta
