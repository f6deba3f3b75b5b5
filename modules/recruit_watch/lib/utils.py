from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

# Fixed-width so lexical order in SQLite matches chronological order.
_ISO_FMT = "%Y-%m-%dT%H:%M:%S.%fZ"


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return utcnow().isoformat().replace("+00:00", "Z")


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db_ts(dt: datetime) -> str:
    return as_utc(dt).strftime(_ISO_FMT)


def from_db_ts(s: str) -> datetime:
    return datetime.strptime(s, _ISO_FMT).replace(tzinfo=timezone.utc)


def parse_iso(value: Any) -> datetime | None:
    """
    Lenient ISO-8601 parse for API payloads ("2025-03-01T18:00:00.000Z").
    Returns None for empty or unparseable input.
    """
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(s))
    except ValueError:
        return None


def slugify_realm(realm: str) -> str:
    """
    'Tarren Mill' -> 'tarren-mill', "Mal'Ganis" -> 'malganis'.
    """
    s = (realm or "").strip().lower().replace("'", "")
    s = re.sub(r"[^0-9a-zÀ-ɏ]+", "-", s)
    return s.strip("-")


def title_from_kebab(slug: str) -> str:
    """
    'liberation-of-undermine' -> 'Liberation Of Undermine'.
    """
    if not slug or not slug.strip():
        return ""
    parts = [p for p in slug.split("-") if p]
    return " ".join(p[0].upper() + p[1:].lower() if len(p) > 1 else p.upper() for p in parts)


def norm_tier(name: str) -> str:
    """
    Comparable form for tier names given as display names or slugs.
    """
    s = (name or "").lower().replace("'", "").replace("-", " ")
    return " ".join(s.split())


def as_float(value: Any) -> float | None:
    """
    Numbers pass through; numeric strings are parsed; '-' and blanks are None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip()
    if not s or s == "-":
        return None
    try:
        return float(s)
    except ValueError:
        return None


def truncate(s: str, limit: int, marker: str = "…") -> str:
    if len(s) <= limit:
        return s
    return s[: max(0, limit - len(marker))] + marker
