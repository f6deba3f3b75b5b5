from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


DEFAULT_TIERS = ["Manaforge Omega", "Liberation Of Undermine"]
DEFAULT_SOURCES = ["raiderio", "warcraftlogs", "armory"]
DEFAULT_LISTING_URL = "https://www.wowprogress.com/gearscore/{region}?lfg=1&sortby=ts"

TIER_ACHIEVEMENTS = ("cutting_edge", "aotc")
PAGE_FETCHERS = ("direct", "flaresolverr")

# field name -> default env var holding the secret. A kwarg "<field>_env"
# overrides the env var name; a literal "<field>" kwarg wins over both.
_SECRET_ENV_DEFAULTS = {
    "raiderio_api_key": "RAIDERIO_API_KEY",
    "wcl_client_id": "WCL_CLIENT_ID",
    "wcl_client_secret": "WCL_CLIENT_SECRET",
    "blizzard_client_id": "BLIZZARD_CLIENT_ID",
    "blizzard_client_secret": "BLIZZARD_CLIENT_SECRET",
    "discord_webhook_url": "DISCORD_WEBHOOK_URL",
    "llm_api_key": "OPENAI_API_KEY",
}


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for the recruit_watch pipeline.

    Built from the `recruit_watch` block of the service config plus the
    environment (secrets). See `from_env_and_kwargs` for every key.
    """

    # Storage
    sqlite_path: str = "/app/local/state/recruitwatch.db"

    # Cadence
    polling_interval_minutes: int = 5
    retention_days: int = 30
    dispatch_delay_seconds: float = 5.0

    # Eligibility
    required_language: str | None = None
    eligible_tiers: list[str] = field(default_factory=lambda: list(DEFAULT_TIERS))
    tier_achievement: str = "cutting_edge"
    allow_missing_progression: bool = False
    min_item_level: float | None = None

    # Listing source
    region: str = "eu"
    listing_url: str = ""
    max_candidates_per_scan: int = 25
    page_fetcher: str = "direct"
    flaresolverr_url: str = "http://localhost:8191/v1"
    use_test_data: bool = False

    # Enrichment
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    enrichment_timeout_seconds: float = 20.0
    request_timeout_seconds: float = 15.0
    max_threads: int = 4

    # Notification + summary
    notify_rejections: bool = False
    enable_summary: bool = False
    llm_model: str = "gemini-2.5-flash"
    llm_base_url: str | None = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_temperature: float = 0.4
    dry_run: bool = False

    # Secrets (from env)
    raiderio_api_key: str | None = field(default=None, repr=False)
    wcl_client_id: str | None = field(default=None, repr=False)
    wcl_client_secret: str | None = field(default=None, repr=False)
    blizzard_client_id: str | None = field(default=None, repr=False)
    blizzard_client_secret: str | None = field(default=None, repr=False)
    discord_webhook_url: str | None = field(default=None, repr=False)
    llm_api_key: str | None = field(default=None, repr=False)

    # ------------- convenience -------------
    @property
    def resolved_listing_url(self) -> str:
        return (self.listing_url or DEFAULT_LISTING_URL).format(region=self.region)

    def public_dict(self) -> dict[str, Any]:
        """Non-secret settings, for start-up activity logs."""
        return {
            "sqlite_path": self.sqlite_path,
            "polling_interval_minutes": self.polling_interval_minutes,
            "retention_days": self.retention_days,
            "dispatch_delay_seconds": self.dispatch_delay_seconds,
            "required_language": self.required_language,
            "eligible_tiers": list(self.eligible_tiers),
            "tier_achievement": self.tier_achievement,
            "min_item_level": self.min_item_level,
            "region": self.region,
            "sources": list(self.sources),
            "page_fetcher": self.page_fetcher,
            "use_test_data": self.use_test_data,
            "notify_rejections": self.notify_rejections,
            "enable_summary": self.enable_summary,
            "dry_run": self.dry_run,
            "has_webhook": bool(self.discord_webhook_url),
        }

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional):

            sqlite_path: str = "/app/local/state/recruitwatch.db"
            polling_interval_minutes: int = 5
            retention_days: int = 30
            dispatch_delay_seconds: float = 5
            required_language: str | None      # e.g. "english"
            eligible_tiers: list[str] | "A,B"  # display names or slugs
            tier_achievement: "cutting_edge" | "aotc"
            allow_missing_progression: bool = false
            min_item_level: float | None
            region: str = "eu"
            listing_url: str                   # "{region}" is substituted
            max_candidates_per_scan: int = 25
            page_fetcher: "direct" | "flaresolverr"
            flaresolverr_url: str
            use_test_data: bool = false
            sources: list[str] | "a,b"         # enrichment client names
            enrichment_timeout_seconds: float = 20
            request_timeout_seconds: float = 15
            max_threads: int = 4
            notify_rejections: bool = false
            enable_summary: bool = false
            llm_model / llm_base_url / llm_temperature
            dry_run: bool = false

        Secrets come from the environment; "<name>_env" overrides which
        variable is read (e.g. discord_webhook_url_env: "MY_HOOK").
        """
        kw = dict(kwargs or {})
        d = cls()

        try:
            settings = cls(
                sqlite_path=str(kw.get("sqlite_path") or d.sqlite_path).strip(),
                polling_interval_minutes=int(kw.get("polling_interval_minutes") or d.polling_interval_minutes),
                retention_days=int(_or_default(kw.get("retention_days"), d.retention_days)),
                dispatch_delay_seconds=float(_or_default(kw.get("dispatch_delay_seconds"), d.dispatch_delay_seconds)),
                required_language=_opt_str(kw.get("required_language")),
                eligible_tiers=_str_list(kw.get("eligible_tiers"), d.eligible_tiers),
                tier_achievement=str(kw.get("tier_achievement") or d.tier_achievement).strip().lower(),
                allow_missing_progression=truthy(kw.get("allow_missing_progression")),
                min_item_level=_opt_float(kw.get("min_item_level")),
                region=str(kw.get("region") or d.region).strip().lower(),
                listing_url=str(kw.get("listing_url") or "").strip(),
                max_candidates_per_scan=int(kw.get("max_candidates_per_scan") or d.max_candidates_per_scan),
                page_fetcher=str(kw.get("page_fetcher") or d.page_fetcher).strip().lower(),
                flaresolverr_url=str(kw.get("flaresolverr_url") or d.flaresolverr_url).strip(),
                use_test_data=truthy(kw.get("use_test_data")),
                sources=[s.lower() for s in _str_list(kw.get("sources"), d.sources)],
                enrichment_timeout_seconds=float(kw.get("enrichment_timeout_seconds") or d.enrichment_timeout_seconds),
                request_timeout_seconds=float(kw.get("request_timeout_seconds") or d.request_timeout_seconds),
                max_threads=int(kw.get("max_threads") or d.max_threads),
                notify_rejections=truthy(kw.get("notify_rejections")),
                enable_summary=truthy(kw.get("enable_summary")),
                llm_model=str(kw.get("llm_model") or d.llm_model).strip(),
                llm_base_url=_opt_str(kw.get("llm_base_url", d.llm_base_url)),
                llm_temperature=float(_or_default(kw.get("llm_temperature"), d.llm_temperature)),
                dry_run=truthy(kw.get("dry_run")),
                **{name: _secret(kw, name, env) for name, env in _SECRET_ENV_DEFAULTS.items()},
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Invalid recruit_watch setting: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _or_default(v: Any, default: Any) -> Any:
    # 0 is a legitimate value for delays/retention, so only None/"" fall back.
    return default if v is None or v == "" else v


def _opt_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _opt_float(v: Any) -> float | None:
    if v is None or v == "":
        return None
    return float(v)


def _str_list(v: Any, default: list[str]) -> list[str]:
    """Accept a list or a comma-separated string."""
    if v is None or v == "":
        return list(default)
    if isinstance(v, str):
        items = v.split(",")
    elif isinstance(v, (list, tuple)):
        items = [str(x) for x in v]
    else:
        raise ConfigError(f"Expected a list or comma-separated string, got {type(v).__name__}.")
    return [s.strip() for s in items if s and s.strip()]


def _secret(kw: Mapping[str, Any], name: str, default_env: str) -> str | None:
    literal = kw.get(name)
    if literal:
        return str(literal).strip() or None
    env_name = str(kw.get(f"{name}_env") or default_env).strip()
    return (os.getenv(env_name) or "").strip() or None


def _validate_settings(s: Settings) -> None:
    if not s.sqlite_path:
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.polling_interval_minutes <= 0:
        raise ConfigError("'polling_interval_minutes' must be >= 1.")
    if s.retention_days <= 0:
        raise ConfigError("'retention_days' must be >= 1.")
    if s.dispatch_delay_seconds < 0:
        raise ConfigError("'dispatch_delay_seconds' must be >= 0.")
    if s.max_candidates_per_scan <= 0:
        raise ConfigError("'max_candidates_per_scan' must be >= 1.")
    if s.max_threads <= 0:
        raise ConfigError("'max_threads' must be >= 1.")
    if s.enrichment_timeout_seconds <= 0 or s.request_timeout_seconds <= 0:
        raise ConfigError("Timeouts must be > 0.")
    if not s.eligible_tiers:
        raise ConfigError("'eligible_tiers' must name at least one tier.")
    if s.tier_achievement not in TIER_ACHIEVEMENTS:
        raise ConfigError(f"'tier_achievement' must be one of {TIER_ACHIEVEMENTS}.")
    if s.page_fetcher not in PAGE_FETCHERS:
        raise ConfigError(f"'page_fetcher' must be one of {PAGE_FETCHERS}.")
    if s.page_fetcher == "flaresolverr" and not s.flaresolverr_url:
        raise ConfigError("'flaresolverr_url' is required when page_fetcher is 'flaresolverr'.")
