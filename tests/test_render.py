# tests/test_render.py
from conftest import rio_profile

from modules.recruit_watch.lib import render
from modules.recruit_watch.lib.models import (
    AllStarEntry,
    ArmoryProfile,
    BossRanking,
    DetailProfile,
    EnrichedCandidate,
    RaidCurveEntry,
    SourceResult,
    WarcraftLogsProfile,
)


def _wcl():
    return WarcraftLogsProfile(
        character_id=1,
        best_performance_average=91.4,
        median_performance_average=78.0,
        all_stars=[AllStarEntry("Holy", 1520.5, 1800.0, 88.1)],
        rankings=[
            BossRanking("Vexie", 4, 95.0, 80.0, 185000),
            BossRanking("Gallywix", 0, None, None, 0),
        ],
    )


def _texts(components):
    out = []
    for c in components:
        if c["type"] == render.TEXT_DISPLAY:
            out.append(c["content"])
        elif c["type"] == render.CONTAINER:
            out.extend(_texts(c["components"]))
    return "\n".join(out)


def test_full_card(make_candidate):
    cand = make_candidate()
    enriched = EnrichedCandidate(
        candidate=cand,
        profiles={
            "raiderio": SourceResult.ok("raiderio", rio_profile(ce_raids=["Liberation Of Undermine"])),
            "warcraftlogs": SourceResult.ok("warcraftlogs", _wcl()),
            "armory": SourceResult.ok("armory", ArmoryProfile(guild="Example Guild", equipped_item_level=727)),
        },
        detail=SourceResult.ok(
            "detail",
            DetailProfile(bio="Raider since Vanilla.", languages="English", specs_playing="Holy", guild_history=["A", "B"]),
        ),
    )
    payload = render.build_payload(enriched)

    assert payload["flags"] == render.IS_COMPONENTS_V2
    assert payload["tts"] is False
    container = payload["components"][0]
    assert container["type"] == render.CONTAINER
    assert container["accent_color"] == render.CLASS_COLORS["paladin"]

    text = _texts(payload["components"])
    assert "# **Testplayer-Draenor** | paladin | 728.50" in text
    assert "Raider since Vanilla." in text
    assert "### Languages: English | Specs: Holy" in text
    assert "Guild: Example Guild | Equipped ilvl: 727" in text
    assert "[RaiderIO](https://raider.io/characters/eu/draenor/Testplayer)" in text
    assert "**Liberation Of Undermine** | 8/8 M" in text
    assert "**Liberation Of Undermine** | Mythic | 01.04.2025" in text
    assert "**Vexie** (4) | Best: 95% | Median: 80% | Fastest kill: 3m 5s" in text
    assert "Gallywix" not in text
    assert "## Guild History:\n- A\n- B" in text


def test_card_with_every_source_absent(make_candidate):
    enriched = EnrichedCandidate(
        candidate=make_candidate(class_name="unknownclass"),
        profiles={
            "raiderio": SourceResult.missing("raiderio", "timeout"),
            "warcraftlogs": SourceResult.missing("warcraftlogs", "not found"),
        },
    )
    payload = render.build_payload(enriched)
    text = _texts(payload["components"])

    assert payload["avatar_url"] == ""
    assert payload["components"][0]["accent_color"] == 0xFFFFFF
    assert "No bio available" in text
    assert "No raid data" in text
    assert "No WarcraftLogs data" in text
    assert "No RaiderIO data" in text
    assert "No guild history available" in text
    assert "RaiderIO (no data)" in text


def test_long_bio_is_truncated(make_candidate):
    enriched = EnrichedCandidate(
        candidate=make_candidate(),
        detail=SourceResult.ok("detail", DetailProfile(bio="x" * 5000)),
    )
    bio = render.build_payload(enriched)["components"][0]["components"][1]["content"]
    assert len(bio.strip()) == render.BIO_LIMIT
    assert bio.strip().endswith("…")


def test_summary_appended_last(make_candidate):
    enriched = EnrichedCandidate(candidate=make_candidate(), summary="**Verdict**: yes")
    comps = render.build_payload(enriched)["components"]
    assert comps[-1] == {"type": render.TEXT_DISPLAY, "content": "**Verdict**: yes"}
    assert comps[-2]["type"] == render.SEPARATOR


def test_curve_section_states():
    rio = rio_profile()
    rio.raid_achievement_curve.extend([
        RaidCurveEntry("Nerubar Palace"),
        RaidCurveEntry("Manaforge Omega", aotc=None, cutting_edge=None),
    ])
    out = render.curve_section(rio)
    assert "**Nerubar Palace** | Uncleared" in out


def test_boss_section_without_kills():
    wcl = WarcraftLogsProfile(character_id=1, rankings=[BossRanking("Vexie", 0, None, None)])
    assert render.boss_section(wcl).endswith("- No kills logged")


def test_rejection_payload(make_candidate):
    p = render.build_rejection_payload(make_candidate(), "no Cutting Edge in Manaforge Omega")
    assert p == {"content": "Player **Testplayer-Draenor** was filtered out: no Cutting Edge in Manaforge Omega"}


def test_summary_text_contains_dossier(make_candidate):
    enriched = EnrichedCandidate(
        candidate=make_candidate(),
        profiles={"warcraftlogs": SourceResult.ok("warcraftlogs", _wcl())},
        detail=SourceResult.ok("detail", DetailProfile(languages="English", bio="Hi")),
    )
    text = render.summary_text(enriched)
    assert text.startswith("Character: Testplayer-Draenor (EU)")
    assert "Languages: English" in text
    assert "Bio:\nHi" in text
    assert "Vexie" in text
