from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Identity:
    """
    (character name, realm) dedup key. Comparison is case-insensitive; the
    original spelling is kept for display.
    """

    character_name: str
    realm: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.character_name.strip().casefold(), self.realm.strip().casefold())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return f"{self.character_name}-{self.realm}"


@dataclass(frozen=True)
class RawCandidate:
    """
    One row from the listing page. Produced fresh every scan, never stored;
    only the derived SeenRecord is.
    """

    character_name: str
    realm: str
    class_name: str
    item_level: float
    listed_at: datetime  # tz-aware UTC
    profile_url: str = ""
    realm_slug: str = ""
    region: str = "eu"

    @property
    def identity(self) -> Identity:
        return Identity(self.character_name, self.realm)

    def __str__(self) -> str:
        return f"{self.character_name} - {self.class_name} ({self.item_level:.2f}) - {self.realm}"


@dataclass(frozen=True)
class SeenRecord:
    identity: Identity
    first_seen_at: datetime
    last_seen_at: datetime


@dataclass(frozen=True)
class BlacklistRecord:
    identity: Identity
    reason: str | None
    blacklisted_at: datetime


# -----------------------------
# Enrichment profiles
# -----------------------------
@dataclass(frozen=True)
class DetailProfile:
    """Player-authored data from the listing source's character page."""

    bio: str | None = None
    languages: str | None = None
    specs_playing: str | None = None
    guild_history: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RaidCurveEntry:
    raid: str  # display name, e.g. "Liberation Of Undermine"
    aotc: datetime | None = None
    cutting_edge: datetime | None = None


@dataclass(frozen=True)
class RaiderIOProfile:
    name: str
    realm: str
    region: str
    class_name: str = ""
    active_spec: str = ""
    achievement_points: int = 0
    thumbnail_url: str = ""
    profile_url: str = ""
    progression: dict[str, str] = field(default_factory=dict)  # tier display name -> "8/8 M"
    raid_achievement_curve: list[RaidCurveEntry] = field(default_factory=list)


@dataclass(frozen=True)
class AllStarEntry:
    spec: str
    points: float | None
    possible_points: float | None
    rank_percent: float | None


@dataclass(frozen=True)
class BossRanking:
    encounter: str
    total_kills: int
    rank_percent: float | None
    median_percent: float | None
    fastest_kill_ms: int = 0

    @property
    def fastest_kill(self) -> str:
        total_s = self.fastest_kill_ms // 1000
        return f"{total_s // 60}m {total_s % 60}s"


@dataclass(frozen=True)
class WarcraftLogsProfile:
    character_id: int | None
    best_performance_average: float | None = None
    median_performance_average: float | None = None
    all_stars: list[AllStarEntry] = field(default_factory=list)
    rankings: list[BossRanking] = field(default_factory=list)


@dataclass(frozen=True)
class ArmoryProfile:
    guild: str | None = None
    level: int | None = None
    equipped_item_level: int | None = None
    achievement_points: int | None = None
    active_spec: str | None = None
    last_login: datetime | None = None


# -----------------------------
# Pipeline results
# -----------------------------
@dataclass(frozen=True)
class SourceResult:
    """
    One enrichment source's outcome for one candidate: either a profile or
    the reason it is absent ("not found", "timeout", an error repr, ...).
    """

    source: str
    value: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, source: str, value: Any) -> SourceResult:
        return cls(source=source, value=value)

    @classmethod
    def missing(cls, source: str, reason: str) -> SourceResult:
        return cls(source=source, value=None, error=reason)

    @property
    def present(self) -> bool:
        return self.error is None and self.value is not None


@dataclass(frozen=True)
class EnrichedCandidate:
    candidate: RawCandidate
    profiles: dict[str, SourceResult] = field(default_factory=dict)
    detail: SourceResult | None = None
    summary: str | None = None

    def profile(self, source: str) -> Any:
        """Profile value for `source`, or None when absent/unconfigured."""
        res = self.profiles.get(source)
        return res.value if res is not None and res.present else None

    def present_profiles(self) -> list[Any]:
        return [r.value for r in self.profiles.values() if r.present]

    @property
    def detail_profile(self) -> DetailProfile | None:
        if self.detail is not None and self.detail.present:
            return self.detail.value
        return None

    def with_detail(self, detail: SourceResult) -> EnrichedCandidate:
        return replace(self, detail=detail)

    def with_summary(self, summary: str | None) -> EnrichedCandidate:
        return replace(self, summary=summary)


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    rule: str | None = None
    reason: str | None = None

    @classmethod
    def accept(cls) -> Verdict:
        return cls(accepted=True)

    @classmethod
    def reject(cls, rule: str, reason: str) -> Verdict:
        return cls(accepted=False, rule=rule, reason=reason)


@dataclass
class CycleReport:
    """Counters for one scan cycle; logged as the cycle summary."""

    fetched: int = 0
    accepted: int = 0
    eligible: int = 0
    rejected_by_rule: Counter = field(default_factory=Counter)
    novelty: Counter = field(default_factory=Counter)
    notified: int = 0
    errored: int = 0
    purged: int = 0
    cancelled: bool = False
    duration_ms: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "accepted": self.accepted,
            "eligible": self.eligible,
            "rejected_by_rule": dict(self.rejected_by_rule),
            "novelty": dict(self.novelty),
            "notified": self.notified,
            "errored": self.errored,
            "purged": self.purged,
            "cancelled": self.cancelled,
            "duration_ms": self.duration_ms,
        }
