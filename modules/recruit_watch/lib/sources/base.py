from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any

from ..models import DetailProfile, RawCandidate


class SourceError(Exception):
    """Base exception for listing/enrichment source failures."""


class Cancelled(SourceError):
    """The cycle's cancel event was set before the call went out."""


def check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled("cancelled")


class ListingCollector(ABC):
    """
    Abstract listing source.

    Contract:
      - fetch_batch(cancel) returns RawCandidates in page order, at most
        the configured limit. Rows that cannot be parsed are skipped.
      - fetch_detail(candidate, cancel) returns the character's detail
        page data, or None when the page has nothing usable.
      - Raise SourceError (or let requests errors escape) on transport
        failure; the engine turns that into an empty batch / absent detail.
      - Do NOT notify, print, or touch the store.
    """

    kind: str = ""

    @abstractmethod
    def fetch_batch(self, cancel: threading.Event | None = None) -> list[RawCandidate]:
        raise NotImplementedError

    def fetch_detail(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> DetailProfile | None:
        return None

    def close(self) -> None:  # noqa: B027 - optional hook
        pass


class EnrichmentClient(ABC):
    """
    Abstract enrichment source (one external profile service).

    Contract:
      - fetch(candidate, cancel) returns a profile object, or None when the
        service does not know the character.
      - Any exception means "transport failure"; the aggregator records it
        as an absent result and never retries within the cycle.
      - Instances are shared across candidates and called from a worker
        pool, so per-instance caches must be thread-safe.
    """

    # Stable registry name, e.g. "raiderio".
    kind: str = ""

    @classmethod
    def from_settings(cls, settings: Any, http: Any) -> EnrichmentClient | None:
        """Build from Settings; return None when required credentials are missing."""
        return cls()

    @abstractmethod
    def fetch(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> Any:
        raise NotImplementedError
