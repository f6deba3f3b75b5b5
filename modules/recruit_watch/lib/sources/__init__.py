# recruit_watch/sources/__init__.py
from __future__ import annotations

# Importing the client modules registers them.
from . import armory, raiderio, warcraftlogs  # noqa: F401
from .base import Cancelled, EnrichmentClient, ListingCollector, SourceError
from .registry import all_kinds, get, register
from .stub import StubCollector
from .wowprogress import WowProgressCollector

__all__ = [
    "Cancelled",
    "EnrichmentClient",
    "ListingCollector",
    "SourceError",
    "StubCollector",
    "WowProgressCollector",
    "all_kinds",
    "get",
    "register",
]
