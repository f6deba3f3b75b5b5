# tests/test_config.py
import pytest

from modules.recruit_watch.lib.config import DEFAULT_TIERS, ConfigError, Settings


def test_defaults():
    s = Settings.from_env_and_kwargs({})
    assert s.polling_interval_minutes == 5
    assert s.retention_days == 30
    assert s.eligible_tiers == DEFAULT_TIERS
    assert s.tier_achievement == "cutting_edge"
    assert s.sources == ["raiderio", "warcraftlogs", "armory"]
    assert s.resolved_listing_url == "https://www.wowprogress.com/gearscore/eu?lfg=1&sortby=ts"
    assert s.discord_webhook_url is None
    assert s.dry_run is False


def test_string_forms_are_coerced():
    s = Settings.from_env_and_kwargs({
        "eligible_tiers": "Manaforge Omega, liberation-of-undermine",
        "sources": "RaiderIO,armory",
        "polling_interval_minutes": "10",
        "dry_run": "yes",
        "min_item_level": "715.5",
        "region": "US",
    })
    assert s.eligible_tiers == ["Manaforge Omega", "liberation-of-undermine"]
    assert s.sources == ["raiderio", "armory"]
    assert s.polling_interval_minutes == 10
    assert s.dry_run is True
    assert s.min_item_level == 715.5
    assert s.resolved_listing_url.endswith("/gearscore/us?lfg=1&sortby=ts")


def test_zero_delay_is_kept():
    assert Settings.from_env_and_kwargs({"dispatch_delay_seconds": 0}).dispatch_delay_seconds == 0.0


def test_empty_sources_list_disables_enrichment():
    assert Settings.from_env_and_kwargs({"sources": []}).sources == []
    assert Settings.from_env_and_kwargs({"sources": None}).sources == ["raiderio", "warcraftlogs", "armory"]
    assert Settings.from_env_and_kwargs({"sources": ["raiderio"]}).sources == ["raiderio"]


def test_secrets_from_env_and_env_override(monkeypatch):
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.com/api/webhooks/1/abc")
    monkeypatch.setenv("MY_HOOK", "https://discord.com/api/webhooks/2/def")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    s = Settings.from_env_and_kwargs({})
    assert s.discord_webhook_url.endswith("/1/abc")
    assert s.llm_api_key == "sk-test"

    s = Settings.from_env_and_kwargs({"discord_webhook_url_env": "MY_HOOK"})
    assert s.discord_webhook_url.endswith("/2/def")

    s = Settings.from_env_and_kwargs({"discord_webhook_url": "https://literal"})
    assert s.discord_webhook_url == "https://literal"


def test_secrets_never_in_repr_or_public_dict(monkeypatch):
    monkeypatch.setenv("WCL_CLIENT_SECRET", "super-secret")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.com/api/webhooks/1/abc")
    s = Settings.from_env_and_kwargs({})
    assert "super-secret" not in repr(s)
    pub = s.public_dict()
    assert "super-secret" not in str(pub)
    assert "webhooks" not in str(pub)
    assert pub["has_webhook"] is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"polling_interval_minutes": -1},
        {"retention_days": 0},
        {"dispatch_delay_seconds": -2},
        {"tier_achievement": "mythic_plus"},
        {"page_fetcher": "selenium"},
        {"eligible_tiers": " , "},
        {"max_threads": "many"},
        {"sources": 5},
    ],
)
def test_invalid_settings_raise(kwargs):
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs(kwargs)


def test_flaresolverr_requires_url():
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({"page_fetcher": "flaresolverr", "flaresolverr_url": " "})
    s = Settings.from_env_and_kwargs({"page_fetcher": "flaresolverr"})
    assert s.flaresolverr_url == "http://localhost:8191/v1"
