from __future__ import annotations

import logging
import threading
from typing import Any

import requests

from ..http_client import ClientCredentialsToken, HttpClient
from ..models import AllStarEntry, BossRanking, RawCandidate, WarcraftLogsProfile
from ..utils import as_float, slugify_realm
from .base import EnrichmentClient, SourceError, check_cancel
from .registry import register

LOG = logging.getLogger(__name__)

TOKEN_URL = "https://www.warcraftlogs.com/oauth/token"
GRAPHQL_URL = "https://www.warcraftlogs.com/api/v2/client"

CHARACTER_QUERY = """
query CharacterRankings($name: String!, $server: String!, $region: String!) {
  characterData {
    character(name: $name, serverSlug: $server, serverRegion: $region) {
      id
      name
      zoneRankings
    }
  }
}
"""


@register
class WarcraftLogsClient(EnrichmentClient):
    """
    Warcraft Logs v2 GraphQL: zone rankings (performance averages, all-stars
    per spec, per-boss rankings) for the current raid zone.
    """

    kind = "warcraftlogs"

    def __init__(
        self,
        http: HttpClient,
        *,
        client_id: str,
        client_secret: str,
        timeout: float | None = None,
    ) -> None:
        self._http = http
        self._token = ClientCredentialsToken(TOKEN_URL, client_id, client_secret)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Any, http: HttpClient) -> WarcraftLogsClient | None:
        if not (settings.wcl_client_id and settings.wcl_client_secret):
            return None
        return cls(
            http,
            client_id=settings.wcl_client_id,
            client_secret=settings.wcl_client_secret,
        )

    def fetch(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> WarcraftLogsProfile | None:
        check_cancel(cancel)
        token = self._token.get(self._http)
        check_cancel(cancel)
        variables = {
            "name": candidate.character_name,
            "server": candidate.realm_slug or slugify_realm(candidate.realm),
            "region": candidate.region.upper(),
        }
        try:
            body = self._http.post_json(
                GRAPHQL_URL,
                json_body={"query": CHARACTER_QUERY, "variables": variables},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 401:
                self._token.invalidate()
            raise

        body = body or {}
        if body.get("errors"):
            messages = [str(err.get("message")) for err in body["errors"] if isinstance(err, dict)]
            raise SourceError(f"warcraftlogs query failed: {'; '.join(messages) or body['errors']!r}")

        character = ((body.get("data") or {}).get("characterData") or {}).get("character")
        if not character:
            return None
        return parse_character(character)


def parse_character(character: dict[str, Any]) -> WarcraftLogsProfile:
    """Numeric fields may arrive as "-" (no parse); those become None."""
    zr = character.get("zoneRankings") or {}

    all_stars = [
        AllStarEntry(
            spec=str(a.get("spec") or ""),
            points=as_float(a.get("points")),
            possible_points=as_float(a.get("possiblePoints")),
            rank_percent=as_float(a.get("rankPercent")),
        )
        for a in (zr.get("allStars") or [])
        if isinstance(a, dict)
    ]

    rankings = []
    for r in zr.get("rankings") or []:
        if not isinstance(r, dict):
            continue
        encounter = (r.get("encounter") or {}).get("name") or ""
        rankings.append(
            BossRanking(
                encounter=str(encounter),
                total_kills=int(r.get("totalKills") or 0),
                rank_percent=as_float(r.get("rankPercent")),
                median_percent=as_float(r.get("medianPercent")),
                fastest_kill_ms=int(as_float(r.get("fastestKill")) or 0),
            )
        )

    char_id = character.get("id")
    return WarcraftLogsProfile(
        character_id=int(char_id) if char_id is not None else None,
        best_performance_average=as_float(zr.get("bestPerformanceAverage")),
        median_performance_average=as_float(zr.get("medianPerformanceAverage")),
        all_stars=all_stars,
        rankings=rankings,
    )
