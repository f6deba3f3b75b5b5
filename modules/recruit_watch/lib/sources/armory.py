from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from ..http_client import ClientCredentialsToken, HttpClient
from ..models import ArmoryProfile, RawCandidate
from ..utils import slugify_realm
from .base import EnrichmentClient, check_cancel
from .registry import register

TOKEN_URL = "https://oauth.battle.net/token"
PROFILE_URL = "https://{region}.api.blizzard.com/profile/wow/character/{realm}/{name}"


@register
class ArmoryClient(EnrichmentClient):
    """Blizzard Game Data profile summary (guild, item level, last login)."""

    kind = "armory"

    def __init__(
        self,
        http: HttpClient,
        *,
        client_id: str,
        client_secret: str,
        locale: str = "en_GB",
        timeout: float | None = None,
    ) -> None:
        self._http = http
        self._token = ClientCredentialsToken(TOKEN_URL, client_id, client_secret)
        self.locale = locale
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Any, http: HttpClient) -> ArmoryClient | None:
        if not (settings.blizzard_client_id and settings.blizzard_client_secret):
            return None
        return cls(
            http,
            client_id=settings.blizzard_client_id,
            client_secret=settings.blizzard_client_secret,
        )

    def fetch(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> ArmoryProfile | None:
        check_cancel(cancel)
        token = self._token.get(self._http)
        check_cancel(cancel)
        region = candidate.region.lower()
        url = PROFILE_URL.format(
            region=region,
            realm=candidate.realm_slug or slugify_realm(candidate.realm),
            name=quote(candidate.character_name.lower()),
        )
        body = self._http.get_json(
            url,
            params={"namespace": f"profile-{region}", "locale": self.locale},
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
            missing=(404,),
        )
        if not body:
            return None
        return parse_summary(body)


def parse_summary(body: dict[str, Any]) -> ArmoryProfile:
    last_login = None
    ts_ms = body.get("last_login_timestamp")
    if isinstance(ts_ms, (int, float)) and ts_ms > 0:
        last_login = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)

    def _name(obj: Any) -> str | None:
        if isinstance(obj, dict):
            name = obj.get("name")
            return str(name) if name else None
        return None

    return ArmoryProfile(
        guild=_name(body.get("guild")),
        level=body.get("level"),
        equipped_item_level=body.get("equipped_item_level"),
        achievement_points=body.get("achievement_points"),
        active_spec=_name(body.get("active_spec")),
        last_login=last_login,
    )
