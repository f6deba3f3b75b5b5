from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any

from ..http_client import HttpClient
from ..models import RaidCurveEntry, RaiderIOProfile, RawCandidate
from ..utils import parse_iso, slugify_realm, title_from_kebab
from .base import EnrichmentClient, check_cancel
from .registry import register

LOG = logging.getLogger(__name__)

PROFILE_URL = "https://raider.io/api/v1/characters/profile"

# Raids whose AOTC / Cutting Edge dates are requested on every lookup.
DEFAULT_CURVE_SLUGS = (
    "manaforge-omega",
    "liberation-of-undermine",
    "nerubar-palace",
    "amirdrassil-the-dreams-hope",
    "aberrus-the-shadowed-crucible",
    "vault-of-the-incarnates",
)


@register
class RaiderIOClient(EnrichmentClient):
    """
    Raider.IO character profile: current-expansion raid progression and the
    AOTC / Cutting Edge curve for a fixed set of raids.

    The API key is optional (unauthenticated calls are rate limited harder).
    Raider.IO answers 400 for unknown characters, so 400/404 mean "not found".
    """

    kind = "raiderio"

    def __init__(
        self,
        http: HttpClient,
        *,
        api_key: str | None = None,
        curve_slugs: Iterable[str] = DEFAULT_CURVE_SLUGS,
        timeout: float | None = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.curve_slugs = list(dict.fromkeys(curve_slugs))
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Any, http: HttpClient) -> RaiderIOClient:
        if not settings.raiderio_api_key:
            LOG.info("raiderio: no API key configured; using unauthenticated requests")
        slugs = list(DEFAULT_CURVE_SLUGS) + [slugify_realm(t) for t in settings.eligible_tiers]
        return cls(
            http,
            api_key=settings.raiderio_api_key,
            curve_slugs=slugs,
        )

    def fetch(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> RaiderIOProfile | None:
        check_cancel(cancel)
        params = {
            "region": candidate.region,
            "realm": candidate.realm_slug or slugify_realm(candidate.realm),
            "name": candidate.character_name,
            "fields": "raid_progression:current-expansion,raid_achievement_curve:" + ":".join(self.curve_slugs),
        }
        if self._api_key:
            params["access_key"] = self._api_key
        body = self._http.get_json(PROFILE_URL, params=params, timeout=self.timeout, missing=(400, 404))
        if not body:
            return None
        return parse_profile(body)


def parse_profile(body: dict[str, Any]) -> RaiderIOProfile:
    progression: dict[str, str] = {}
    for slug, tier in (body.get("raid_progression") or {}).items():
        summary = str((tier or {}).get("summary") or "").strip()
        if summary:
            progression[title_from_kebab(slug)] = summary

    curve = [
        RaidCurveEntry(
            raid=title_from_kebab(str(entry.get("raid") or "")),
            aotc=parse_iso(entry.get("aotc")),
            cutting_edge=parse_iso(entry.get("cutting_edge")),
        )
        for entry in (body.get("raid_achievement_curve") or [])
        if isinstance(entry, dict) and entry.get("raid")
    ]

    return RaiderIOProfile(
        name=str(body.get("name") or ""),
        realm=str(body.get("realm") or ""),
        region=str(body.get("region") or ""),
        class_name=str(body.get("class") or ""),
        active_spec=str(body.get("active_spec_name") or ""),
        achievement_points=int(body.get("achievement_points") or 0),
        thumbnail_url=str(body.get("thumbnail_url") or ""),
        profile_url=str(body.get("profile_url") or ""),
        progression=progression,
        raid_achievement_curve=curve,
    )
