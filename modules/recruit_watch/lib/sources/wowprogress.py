# modules/recruit_watch/lib/sources/wowprogress.py
from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from urllib.parse import urljoin

from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from ..http_client import BROWSER_UA, HttpClient
from ..models import DetailProfile, RawCandidate
from ..utils import slugify_realm
from .base import ListingCollector, SourceError, check_cancel

LOG = logging.getLogger(__name__)

BASE_URL = "https://www.wowprogress.com"

# Visible fallback when a row has no data-ts span, e.g. "Dec 18, 2025 00:00".
_LISTED_FMT = "%b %d, %Y %H:%M"

_MULTIWORD_CLASSES = ("demon hunter", "death knight")

_LANG_RE = re.compile(r"^\s*(?:primary\s+)?languages?\s*:\s*(.+)$", re.I | re.S)
_SPECS_RE = re.compile(r"^\s*specs?\s+playing\s*:\s*(.+)$", re.I | re.S)


class WowProgressCollector(ListingCollector):
    """
    WoWProgress "looking for guild" gearscore listing.

    Pages are fetched either directly or through a FlareSolverr instance
    (the site sits behind a bot challenge), chosen by `fetcher`.
    """

    kind = "wowprogress"

    def __init__(
        self,
        http: HttpClient,
        *,
        listing_url: str,
        region: str = "eu",
        limit: int = 25,
        fetcher: str = "direct",
        flaresolverr_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._http = http
        self.listing_url = listing_url
        self.region = region
        self.limit = limit
        self.fetcher = fetcher
        self.flaresolverr_url = flaresolverr_url
        self.timeout = timeout

    def fetch_batch(self, cancel: threading.Event | None = None) -> list[RawCandidate]:
        check_cancel(cancel)
        html = self._fetch_page(self.listing_url)
        return parse_listing(html, region=self.region, limit=self.limit)

    def fetch_detail(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> DetailProfile | None:
        if not candidate.profile_url:
            return None
        check_cancel(cancel)
        return parse_detail(self._fetch_page(candidate.profile_url))

    def close(self) -> None:
        self._http.close()

    # ---- internals ----

    def _fetch_page(self, url: str) -> str:
        if self.fetcher == "flaresolverr":
            return self._fetch_via_flaresolverr(url)
        return self._http.get_text(url, headers={"User-Agent": BROWSER_UA}, timeout=self.timeout)

    def _fetch_via_flaresolverr(self, url: str) -> str:
        if not self.flaresolverr_url:
            raise SourceError("flaresolverr_url is not configured")
        body = self._http.post_json(
            self.flaresolverr_url,
            json_body={"cmd": "request.get", "url": url, "maxTimeout": 60000},
            timeout=max(self.timeout or 0, 70.0),
        )
        body = body or {}
        if str(body.get("status") or "").lower() != "ok":
            raise SourceError(f"FlareSolverr failed for {url}: {body.get('message') or body.get('status')!r}")
        solution = body.get("solution") or {}
        status = int(solution.get("status") or 0)
        if status >= 400:
            raise SourceError(f"FlareSolverr upstream status {status} for {url}")
        return str(solution.get("response") or "")


# ---- parsing (module-level so tests can hit it without a collector) ----


def parse_listing(html: str, *, region: str = "eu", limit: int | None = None) -> list[RawCandidate]:
    """
    Parse the gearscore listing table into RawCandidates, in page order.

    Columns: character | guild | raid | realm | item level | updated.
    Rows without a name, realm, numeric item level or parseable timestamp
    are skipped.
    """
    soup = BeautifulSoup(html or "", "html5lib")
    table = soup.select_one("table.rating")
    if table is None:
        LOG.warning("wowprogress: rating table not found; falling back to first table")
        table = soup.find("table")
    if table is None:
        return []

    out: list[RawCandidate] = []
    for row in table.find_all("tr"):
        cells = row.find_all("td")
        if len(cells) < 6:
            continue  # header or malformed row
        cand = _parse_row(cells, region=region)
        if cand is None:
            continue
        out.append(cand)
        if limit is not None and len(out) >= limit:
            break
    return out


def _parse_row(cells, *, region: str) -> RawCandidate | None:
    link = cells[0].find("a")
    if link is None:
        return None
    name = link.get_text(strip=True)
    realm = cells[3].get_text(" ", strip=True)
    if not name or not realm:
        return None

    ilvl_text = cells[4].get_text(strip=True)
    try:
        item_level = float(ilvl_text)
    except ValueError:
        LOG.debug("wowprogress: skipping %s-%s, bad item level %r", name, realm, ilvl_text)
        return None

    listed_at = parse_listed_at(cells[5])
    if listed_at is None:
        LOG.warning("wowprogress: skipping %s-%s, no parseable listing timestamp", name, realm)
        return None

    href = (link.get("href") or "").strip()
    return RawCandidate(
        character_name=name,
        realm=realm,
        class_name=class_from_label(link.get("aria-label") or ""),
        item_level=item_level,
        listed_at=listed_at,
        profile_url=urljoin(BASE_URL + "/", href) if href else "",
        realm_slug=slugify_realm(realm),
        region=region,
    )


def parse_listed_at(cell) -> datetime | None:
    """
    Prefer the unix `data-ts` attribute; fall back to the visible
    "Dec 18, 2025 00:00" text, read as UTC.
    """
    span = cell.find(attrs={"data-ts": True})
    if span is not None:
        raw = str(span.get("data-ts") or "").strip()
        if raw.isdigit():
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    text = " ".join(cell.get_text(" ", strip=True).split())
    if not text:
        return None
    try:
        return datetime.strptime(text, _LISTED_FMT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def class_from_label(label: str) -> str:
    """
    'blood elf paladin' -> 'paladin', 'night elf demon hunter' -> 'demon hunter',
    'evoker' -> 'evoker' (dracthyr rows carry no race).
    """
    words = " ".join((label or "").lower().split())
    if not words:
        return ""
    for cls in _MULTIWORD_CLASSES:
        if words == cls or words.endswith(" " + cls):
            return cls
    return words.rsplit(" ", 1)[-1]


def parse_detail(html: str) -> DetailProfile | None:
    """
    Character page: free-text commentary (bio), the "Languages:" and
    "Specs playing:" lines, and the guild history list.
    Returns None when none of them are present.
    """
    soup = BeautifulSoup(html or "", "html5lib")

    bio = None
    node = soup.select_one(".charCommentary")
    if node is not None:
        bio = node.get_text("\n", strip=True) or None

    languages = specs = None
    for el in soup.select(".language, .registeredTo div, .charInfo div"):
        text = el.get_text(" ", strip=True)
        m = _LANG_RE.match(text)
        if m and languages is None:
            languages = " ".join(m.group(1).split())
            continue
        m = _SPECS_RE.match(text)
        if m and specs is None:
            specs = " ".join(m.group(1).split())

    guilds: list[str] = []
    for el in soup.select(".guildHistory li, .guild_history li"):
        text = " ".join(el.get_text(" ", strip=True).split())
        if text and text not in guilds:
            guilds.append(text)

    if not (bio or languages or specs or guilds):
        return None
    return DetailProfile(bio=bio, languages=languages, specs_playing=specs, guild_history=guilds)
