# modules/recruit_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .aggregator import EnrichmentAggregator
from .config import ConfigError, Settings
from .db import SeenStore, StoreError
from .engine import Scanner
from .models import CycleReport, EnrichedCandidate, Identity, RawCandidate, SourceResult, Verdict
from .novelty import filter_batch

__all__ = [
    "ConfigError",
    "CycleReport",
    "EnrichedCandidate",
    "EnrichmentAggregator",
    "Identity",
    "RawCandidate",
    "Scanner",
    "SeenStore",
    "Settings",
    "SourceResult",
    "StoreError",
    "Verdict",
    "filter_batch",
]
