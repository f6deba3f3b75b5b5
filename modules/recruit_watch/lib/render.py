from __future__ import annotations

from typing import Any

from .models import (
    ArmoryProfile,
    DetailProfile,
    EnrichedCandidate,
    RaiderIOProfile,
    RawCandidate,
    WarcraftLogsProfile,
)
from .utils import truncate

# Discord "components v2" message parts.
# https://discord.com/developers/docs/components/reference
CONTAINER = 17
TEXT_DISPLAY = 10
SEPARATOR = 14
IS_COMPONENTS_V2 = 1 << 15

BIO_LIMIT = 3700

CLASS_COLORS = {
    "death knight": 0xC41F3B,
    "demon hunter": 0xA330C9,
    "druid": 0xFF7D0A,
    "evoker": 0x33937F,
    "hunter": 0xABD473,
    "mage": 0x69CCF0,
    "monk": 0x00FF96,
    "paladin": 0xF58CBA,
    "priest": 0xFFFFFF,
    "rogue": 0xFFF569,
    "shaman": 0x0070DE,
    "warlock": 0x9482C9,
    "warrior": 0xC79C6E,
}


def class_color(class_name: str) -> int:
    return CLASS_COLORS.get((class_name or "").strip().lower(), 0xFFFFFF)


def _text(content: str) -> dict[str, Any]:
    return {"type": TEXT_DISPLAY, "content": content}


def _divider() -> dict[str, Any]:
    return {"type": SEPARATOR, "divider": True, "spacing": 2}


def _pct(v: float | None) -> str:
    return "-" if v is None else f"{v:.0f}%"


def _num(v: float | None) -> str:
    return "-" if v is None else f"{v:.0f}"


# -----------------------------
# Sections
# -----------------------------
def header_line(c: RawCandidate) -> str:
    return f"# **{c.character_name}-{c.realm}** | {c.class_name} | {c.item_level:.2f}"


def external_links(c: RawCandidate, rio: RaiderIOProfile | None) -> str:
    slug = c.realm_slug
    links = [
        f"[Armory](https://worldofwarcraft.blizzard.com/en-gb/character/{c.region}/{slug}/{c.character_name})",
        f"[RaiderIO]({rio.profile_url})" if rio and rio.profile_url else "RaiderIO (no data)",
        f"[WoWProgress]({c.profile_url})" if c.profile_url else "WoWProgress",
        f"[WCL](https://www.warcraftlogs.com/character/{c.region}/{slug}/{c.character_name})",
    ]
    return "## External Links:\n" + " | ".join(links)


def progression_section(rio: RaiderIOProfile | None) -> str:
    header = "## __Current Expansion Progression__:"
    if rio is None or not rio.progression:
        return f"{header}\n- No raid data"
    lines = [f"**{tier}** | {summary}" for tier, summary in rio.progression.items()]
    return header + "\n- " + "\n- ".join(lines)


def all_stars_section(wcl: WarcraftLogsProfile | None) -> str:
    header = "## __WarcraftLogs - Allstars__:"
    if wcl is None:
        return f"{header}\n- No WarcraftLogs data"
    lines = [
        f"**Best** Perf. Avg {_pct(wcl.best_performance_average)} | "
        f"**Median** Perf. Avg {_pct(wcl.median_performance_average)}"
    ]
    for a in wcl.all_stars:
        lines.append(f"**{a.spec}** | {_pct(a.rank_percent)} | ({_num(a.points)} out of {_num(a.possible_points)})")
    return header + "\n- " + "\n- ".join(lines)


def boss_section(wcl: WarcraftLogsProfile | None) -> str:
    header = "## __WarcraftLogs - Boss Rankings__:"
    if wcl is None:
        return f"{header}\n- No WarcraftLogs data"
    killed = [r for r in wcl.rankings if r.total_kills > 0]
    if not killed:
        return f"{header}\n- No kills logged"
    lines = [
        f"**{r.encounter}** ({r.total_kills}) | Best: {_pct(r.rank_percent)} | "
        f"Median: {_pct(r.median_percent)} | Fastest kill: {r.fastest_kill}"
        for r in killed
    ]
    return header + "\n- " + "\n- ".join(lines)


def curve_section(rio: RaiderIOProfile | None) -> str:
    header = "## __Ahead of the Curve / Cutting Edge__:"
    if rio is None or not rio.raid_achievement_curve:
        return f"{header}\n- No RaiderIO data"
    lines = []
    for entry in rio.raid_achievement_curve:
        if entry.cutting_edge is not None:
            status = "Mythic | " + entry.cutting_edge.strftime("%d.%m.%Y")
        elif entry.aotc is not None:
            status = "Heroic | " + entry.aotc.strftime("%d.%m.%Y")
        else:
            status = "Uncleared"
        lines.append(f"**{entry.raid}** | {status}")
    return header + "\n- " + "\n- ".join(lines)


def armory_line(armory: ArmoryProfile | None) -> str | None:
    if armory is None:
        return None
    parts = []
    if armory.guild:
        parts.append(f"Guild: {armory.guild}")
    if armory.equipped_item_level:
        parts.append(f"Equipped ilvl: {armory.equipped_item_level}")
    if armory.active_spec:
        parts.append(f"Spec: {armory.active_spec}")
    if armory.last_login is not None:
        parts.append(f"Last login: {armory.last_login:%d.%m.%Y}")
    return "### " + " | ".join(parts) if parts else None


def guild_history_section(detail: DetailProfile | None) -> str:
    if detail is None or not detail.guild_history:
        return "No guild history available"
    return "## Guild History:\n- " + "\n- ".join(detail.guild_history)


# -----------------------------
# Payloads
# -----------------------------
def build_payload(enriched: EnrichedCandidate) -> dict[str, Any]:
    """Webhook body for an accepted candidate (post with ?with_components=true)."""
    c = enriched.candidate
    rio = enriched.profile("raiderio")
    wcl = enriched.profile("warcraftlogs")
    armory = enriched.profile("armory")
    detail = enriched.detail_profile

    bio = truncate(detail.bio, BIO_LIMIT) if detail and detail.bio else "No bio available"
    person = [
        _text(header_line(c)),
        _text(bio + "\n\n"),
        _text(
            f"### Languages: {(detail.languages if detail else None) or '-'} | "
            f"Specs: {(detail.specs_playing if detail else None) or '-'}"
        ),
    ]
    line = armory_line(armory)
    if line:
        person.append(_text(line))
    person.append(_text(external_links(c, rio)))

    components: list[dict[str, Any]] = [
        {"type": CONTAINER, "accent_color": class_color(c.class_name), "components": person},
        _divider(),
        _text(progression_section(rio)),
        _divider(),
        _text(all_stars_section(wcl)),
        _text(boss_section(wcl)),
        _divider(),
        _text(curve_section(rio)),
        _divider(),
        _text(guild_history_section(detail)),
    ]
    if enriched.summary:
        components.append(_divider())
        components.append(_text(enriched.summary))

    return {
        "tts": False,
        "avatar_url": rio.thumbnail_url if rio else "",
        "flags": IS_COMPONENTS_V2,
        "components": components,
    }


def build_rejection_payload(candidate: RawCandidate, reason: str) -> dict[str, Any]:
    return {"content": f"Player **{candidate.character_name}-{candidate.realm}** was filtered out: {reason}"}


def summary_text(enriched: EnrichedCandidate) -> str:
    """Plain-text dossier handed to the summarizer."""
    c = enriched.candidate
    rio = enriched.profile("raiderio")
    wcl = enriched.profile("warcraftlogs")
    detail = enriched.detail_profile
    parts = [
        f"Character: {c.character_name}-{c.realm} ({c.region.upper()})",
        f"Class: {c.class_name} | Item level: {c.item_level:.2f}",
    ]
    if detail is not None:
        parts.append(f"Languages: {detail.languages or '-'} | Specs: {detail.specs_playing or '-'}")
        if detail.bio:
            parts.append("Bio:\n" + truncate(detail.bio, BIO_LIMIT))
    parts.append(progression_section(rio))
    parts.append(all_stars_section(wcl))
    parts.append(boss_section(wcl))
    parts.append(curve_section(rio))
    parts.append(guild_history_section(detail))
    return "\n\n".join(parts)
