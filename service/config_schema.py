# service/config_schema.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


@dataclass
class _LoadResult:
    """Internal convenience container (not required by callers)."""

    cfg: dict[str, Any]
    source: str


MODULE_KEY = "recruit_watch"
DEFAULT_START_DELAY_SECONDS = 10

_TOP_LEVEL_KEYS = {"timezone", "start_delay_seconds", "misfire_grace_seconds", MODULE_KEY}


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Internal default (module settings from env/defaults only)

    Returns:
        dict with "timezone", "start_delay_seconds" and a "recruit_watch"
        mapping of module kwargs.
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using default config.")
        cfg: dict[str, Any] = {}
    else:
        cfg = _read_any(resolved_path).cfg

    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Validate the configuration. Raise ConfigError on any problem.
    No prints, no sys.exit().
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    unknown = set(cfg.keys()) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"Unknown top-level key(s): {sorted(unknown)}")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")
    if isinstance(tz, str):
        import pytz

        try:
            pytz.timezone(tz)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown timezone {tz!r}.") from e

    _to_int(cfg.get("start_delay_seconds", 0), field="start_delay_seconds", allow_zero=True)
    if cfg.get("misfire_grace_seconds") is not None:
        _to_int(cfg["misfire_grace_seconds"], field="misfire_grace_seconds", allow_zero=False)

    module_cfg = cfg.get(MODULE_KEY)
    if not isinstance(module_cfg, dict):
        raise ConfigError(f"'{MODULE_KEY}' must be an object of module settings.")

    # Module-level validation lives with the module's Settings.
    from modules.recruit_watch.lib.config import ConfigError as SettingsError
    from modules.recruit_watch.lib.config import Settings

    try:
        Settings.from_env_and_kwargs(module_cfg)
    except SettingsError as e:
        raise ConfigError(f"{MODULE_KEY}: {e}") from e


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    # Resolve timezone now so scheduler can use cfg['timezone']
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    if cfg.get("start_delay_seconds") is None:
        cfg["start_delay_seconds"] = DEFAULT_START_DELAY_SECONDS
    else:
        cfg["start_delay_seconds"] = _to_int(cfg["start_delay_seconds"], field="start_delay_seconds", allow_zero=True)

    module_cfg = cfg.get(MODULE_KEY)
    if module_cfg is None:
        cfg[MODULE_KEY] = {}
    elif isinstance(module_cfg, dict):
        cfg[MODULE_KEY] = dict(module_cfg)  # shallow copy; callers may add overrides


def _to_int(value: Any, *, field: str, allow_zero: bool) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{field}' must be an integer.")
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"'{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".json"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Top-level JSON must be an object.")
        return _LoadResult(cfg=data, source=path)

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    # Try JSON as a fallback if extension is unknown
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return _LoadResult(cfg=data, source=path)

    raise ConfigError(f"Unsupported config format for {path}. Use .json or .yml/.yaml.")
