# tests/test_config_schema.py
import pytest

from service import config_schema


def test_load_and_validate_min_config(write_min_config):
    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    assert cfg["timezone"] == "UTC"
    assert cfg["start_delay_seconds"] == 0
    assert cfg["recruit_watch"]["use_test_data"] is True
    config_schema.validate(cfg)


def test_defaults_without_config_path(monkeypatch):
    monkeypatch.setenv("TZ", "Europe/Berlin")
    cfg = config_schema.load_config()
    assert cfg["timezone"] == "Europe/Berlin"
    assert cfg["start_delay_seconds"] == config_schema.DEFAULT_START_DELAY_SECONDS
    assert cfg["recruit_watch"] == {}
    config_schema.validate(cfg)


def test_yaml_config(tmp_path):
    p = tmp_path / "config.yml"
    p.write_text(
        "timezone: Europe/London\n"
        "recruit_watch:\n"
        "  required_language: english\n"
        "  eligible_tiers:\n"
        "    - Manaforge Omega\n"
        "  polling_interval_minutes: 3\n",
        encoding="utf-8",
    )
    cfg = config_schema.load_config(str(p))
    config_schema.validate(cfg)
    assert cfg["recruit_watch"]["eligible_tiers"] == ["Manaforge Omega"]


def test_empty_yaml_is_defaults(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("", encoding="utf-8")
    cfg = config_schema.load_config(str(p))
    assert cfg["recruit_watch"] == {}


@pytest.mark.parametrize(
    "text, name",
    [
        ("{not json", "bad.json"),
        ("- just\n- a list\n", "list.yml"),
        ("key: [unclosed", "broken.yaml"),
        ("plain text", "config.txt"),
    ],
)
def test_unreadable_configs_raise(tmp_path, text, name):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config(str(p))


def test_missing_file_raises(tmp_path):
    with pytest.raises(config_schema.ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "nope.json"))


@pytest.mark.parametrize(
    "cfg",
    [
        {"timezone": "UTC", "start_delay_seconds": 0, "recruit_watch": {}, "jobs": []},
        {"timezone": "Mars/Olympus", "start_delay_seconds": 0, "recruit_watch": {}},
        {"timezone": "UTC", "start_delay_seconds": -5, "recruit_watch": {}},
        {"timezone": "UTC", "start_delay_seconds": 0, "misfire_grace_seconds": 0, "recruit_watch": {}},
        {"timezone": "UTC", "start_delay_seconds": 0, "recruit_watch": ["not", "a", "dict"]},
        {"timezone": "UTC", "start_delay_seconds": 0, "recruit_watch": {"tier_achievement": "heroic"}},
    ],
)
def test_validate_rejects(cfg):
    with pytest.raises(config_schema.ConfigError):
        config_schema.validate(cfg)


def test_module_errors_are_prefixed():
    cfg = {"timezone": "UTC", "start_delay_seconds": 0, "recruit_watch": {"retention_days": 0}}
    with pytest.raises(config_schema.ConfigError, match=r"^recruit_watch: "):
        config_schema.validate(cfg)
