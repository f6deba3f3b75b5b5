from __future__ import annotations

import logging
import threading

from ..models import DetailProfile, RawCandidate
from .base import ListingCollector, check_cancel
from .wowprogress import parse_detail, parse_listing

LOG = logging.getLogger(__name__)

# Offline listing used by `use_test_data` and tests. Same shape as the live
# gearscore table; the last column carries only the visible timestamp text.
SAMPLE_HTML = """\
<!DOCTYPE html>
<html>
<body>
<table class="rating">
  <tr><th>Character</th><th>Guild</th><th>Raid</th><th>Realm</th><th>iLvL</th><th>Updated</th></tr>
  <tr>
    <td><a aria-label="blood elf paladin" href="/character/eu/draenor/Testplayer">Testplayer</a></td>
    <td>Test Guild</td>
    <td></td>
    <td>Draenor</td>
    <td>728.50</td>
    <td>Dec 18, 2025 00:00</td>
  </tr>
  <tr>
    <td><a aria-label="orc warrior" href="/character/eu/silvermoon/Anotherguy">Anotherguy</a></td>
    <td></td>
    <td></td>
    <td>Silvermoon</td>
    <td>725.13</td>
    <td>Dec 17, 2025 23:45</td>
  </tr>
  <tr>
    <td><a aria-label="kul tiran mage" href="/character/eu/tarren-mill/Magetest">Magetest</a></td>
    <td>Epic Gamers</td>
    <td></td>
    <td>Tarren Mill</td>
    <td>729.88</td>
    <td>Dec 17, 2025 22:30</td>
  </tr>
</table>
</body>
</html>
"""

SAMPLE_DETAIL_HTML = """\
<html>
<body>
<div class="registeredTo">
  <div class="language">Languages: English</div>
  <div class="language">Specs playing: Holy, Retribution</div>
</div>
<div class="charCommentary">Looking for a 2-night mythic guild. CE last two tiers.</div>
<ul class="guildHistory">
  <li>Example Guild (Draenor)</li>
</ul>
</body>
</html>
"""


class StubCollector(ListingCollector):
    """
    A zero-network collector for tests and test-data mode.

    `html` defaults to SAMPLE_HTML; `details` maps a lower-cased character
    name to detail-page HTML (every candidate gets SAMPLE_DETAIL_HTML when
    omitted).
    """

    kind = "stub"

    def __init__(
        self,
        html: str | None = None,
        *,
        region: str = "eu",
        limit: int | None = None,
        details: dict[str, str] | None = None,
    ) -> None:
        self.html = SAMPLE_HTML if html is None else html
        self.region = region
        self.limit = limit
        self.details = details

    def fetch_batch(self, cancel: threading.Event | None = None) -> list[RawCandidate]:
        check_cancel(cancel)
        LOG.warning("Using bundled test listing; no live data is fetched")
        return parse_listing(self.html, region=self.region, limit=self.limit)

    def fetch_detail(self, candidate: RawCandidate, cancel: threading.Event | None = None) -> DetailProfile | None:
        check_cancel(cancel)
        if self.details is None:
            return parse_detail(SAMPLE_DETAIL_HTML)
        html = self.details.get(candidate.character_name.lower())
        return parse_detail(html) if html else None
