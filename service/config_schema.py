# service/config_schema.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import pytz
import yaml

from modules.hiring_watch.lib.config import ConfigError, Settings

logger = logging.getLogger(__name__)

_SCALARS = (str, int, float, bool)


@dataclass
class _LoadResult:
    """Internal convenience container (not required by callers)."""

    cfg: dict[str, Any]
    source: str


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the monitor configuration file.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Internal default (empty mapping: every Settings default applies)

    Returns a flat dict of Settings field names to scalar values, with
    "timezone" always resolved (config, then TZ, then UTC).
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using built-in defaults.")
        cfg: dict[str, Any] = {}
    else:
        cfg = _read_any(resolved_path).cfg
        logger.info("Loaded config from %s (%d key(s))", resolved_path, len(cfg))

    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Structural validation of a loaded config. Raise ConfigError on any problem.
    Field-level rules live in Settings.from_config.
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a mapping.")
    for key, value in cfg.items():
        if not isinstance(key, str):
            raise ConfigError(f"Config keys must be strings (got {key!r}).")
        if value is not None and not isinstance(value, _SCALARS):
            raise ConfigError(f"'{key}' must be a scalar value (got {type(value).__name__}).")

    tz = cfg.get("timezone")
    if tz is not None:
        try:
            pytz.timezone(str(tz))
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown timezone {tz!r}.") from e


def load_settings(
    path: str | None = None,
    environ: dict[str, str] | None = None,
    *,
    require_secrets: bool = True,
) -> Settings:
    """load_config + validate + Settings.from_config in one call."""
    cfg = load_config(path)
    validate(cfg)
    return Settings.from_config(cfg, environ, require_secrets=require_secrets)


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    else:
        # .json, or unknown extension tried as JSON
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Unsupported or invalid config {path}; use .json or .yml/.yaml: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be a mapping/object.")
    return _LoadResult(cfg=data, source=path)
