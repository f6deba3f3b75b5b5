from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .models import EnrichedCandidate, Verdict
from .utils import norm_tier

# Rule stages, in evaluation order. LISTING rules need only the listing
# row; PROFILE rules see enrichment results; DETAIL rules see the detail page.
LISTING = "listing"
PROFILE = "profile"
DETAIL = "detail"
STAGES = (LISTING, PROFILE, DETAIL)


@dataclass(frozen=True)
class Rule:
    name: str
    stage: str
    check: Callable[[EnrichedCandidate], Verdict]

    def __call__(self, enriched: EnrichedCandidate) -> Verdict:
        return self.check(enriched)


def evaluate(rules: Iterable[Rule], enriched: EnrichedCandidate, stage: str) -> Verdict:
    """Run the rules of one stage in order; the first rejection wins."""
    for rule in rules:
        if rule.stage != stage:
            continue
        verdict = rule(enriched)
        if not verdict.accepted:
            return verdict
    return Verdict.accept()


# -----------------------------
# Rules
# -----------------------------
def min_item_level(threshold: float) -> Rule:
    def check(e: EnrichedCandidate) -> Verdict:
        ilvl = e.candidate.item_level
        if ilvl < threshold:
            return Verdict.reject("min_item_level", f"item level {ilvl:.2f} is below {threshold:g}")
        return Verdict.accept()

    return Rule("min_item_level", LISTING, check)


def requires_tier_achievement(
    tiers: Sequence[str],
    *,
    achievement: str = "cutting_edge",
    allow_missing: bool = False,
) -> Rule:
    """
    Accept when any present profile's achievement curve shows the
    achievement for one of `tiers` (display names or slugs). "aotc" is
    satisfied by either AOTC or Cutting Edge.

    With no profile exposing a curve at all the candidate is rejected,
    unless `allow_missing` is set.
    """
    wanted = {norm_tier(t) for t in tiers if t and t.strip()}
    label = "Cutting Edge" if achievement == "cutting_edge" else "AOTC"
    tier_list = ", ".join(tiers)

    def earned(entry) -> bool:
        if achievement == "cutting_edge":
            return entry.cutting_edge is not None
        return entry.aotc is not None or entry.cutting_edge is not None

    def check(e: EnrichedCandidate) -> Verdict:
        curves = [
            p.raid_achievement_curve
            for p in e.present_profiles()
            if getattr(p, "raid_achievement_curve", None) is not None
        ]
        if not curves:
            if allow_missing:
                return Verdict.accept()
            return Verdict.reject("tier", "no raid progression data available")
        for curve in curves:
            for entry in curve:
                if norm_tier(entry.raid) in wanted and earned(entry):
                    return Verdict.accept()
        return Verdict.reject("tier", f"no {label} in {tier_list}")

    return Rule("tier", PROFILE, check)


def requires_language(language: str) -> Rule:
    """
    Case-insensitive substring match against the detail page's languages
    field. A missing detail or field passes.
    """
    token = language.strip().lower()

    def check(e: EnrichedCandidate) -> Verdict:
        detail = e.detail_profile
        if detail is None or not detail.languages:
            return Verdict.accept()
        if token in detail.languages.lower():
            return Verdict.accept()
        return Verdict.reject("language", f"does not speak {language} (languages: {detail.languages})")

    return Rule("language", DETAIL, check)


def build_rules(settings) -> list[Rule]:
    """Rule chain from Settings, in evaluation order."""
    rules: list[Rule] = []
    if settings.min_item_level is not None:
        rules.append(min_item_level(settings.min_item_level))
    rules.append(
        requires_tier_achievement(
            settings.eligible_tiers,
            achievement=settings.tier_achievement,
            allow_missing=settings.allow_missing_progression,
        )
    )
    if settings.required_language:
        rules.append(requires_language(settings.required_language))
    return rules
