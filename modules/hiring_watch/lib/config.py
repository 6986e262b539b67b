from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from .utils import truthy

LOG = logging.getLogger(__name__)


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided config/env cannot form a valid Settings."""


# -----------------------------
# Defaults
# -----------------------------
DEFAULT_WEBSITE_URL = "https://hiring.amazon.ca/app#/jobSearch"
DEFAULT_GRAPHQL_URL = "https://e5mquma77feepi2bdn4d6h3mpu.appsync-api.us-east-1.amazonaws.com/graphql"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

MIN_POLL_INTERVAL_MS = 500
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_MAX_PER_CYCLE = 5

SEEN_POLICIES = ("trim", "clear")

# Environment variables that override config file values (env wins).
_ENV_OVERRIDES = {
    "TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "TELEGRAM_CHANNEL_ID": "telegram_channel_id",
    "LISTINGS_API_URL": "graphql_url",
    "POLL_INTERVAL_MS": "poll_interval_ms",
    "MAX_JOBS_PER_ALERT": "max_per_cycle",
    "SEEN_POLICY": "seen_policy",
    "HEADLESS": "headless",
}


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for one monitor process (one region, one channel).

    Built from an optional config file (see service.config_schema) with a flat
    mapping of field names, then environment overrides for secrets and a few
    tuning knobs.
    """

    # Target site / API
    website_url: str = DEFAULT_WEBSITE_URL
    graphql_url: str = DEFAULT_GRAPHQL_URL
    apply_url: str = ""
    origin: str = "https://hiring.amazon.ca"
    locale: str = "en-CA"
    country: str = "Canada"
    keywords: str = ""
    page_size: int = 100
    hours_min: int = 0
    hours_max: int = 50
    timezone: str = "UTC"
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout_seconds: float = 15.0

    # Browser / extraction
    headless: bool = True
    navigation_timeout_seconds: float = 30.0
    settle_seconds: float = 15.0
    well_known_storage_key: str = "sessionToken"
    extraction_attempts: int = 3
    extraction_retry_delay_seconds: float = 30.0
    near_expiry_guard_minutes: float = 10.0
    fallback_validity_minutes: float = 55.0

    # Token lifecycle
    guard_margin_minutes: float = 5.0
    token_refresh_minutes: float = 55.0

    # Polling / dedup
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    seen_policy: str = "trim"
    seen_capacity: int = 1000
    seen_retain: int = 500
    seen_clear_interval_seconds: float = 30.0
    health_interval_minutes: float = 5.0
    executor_workers: int = 4

    # Delivery
    telegram_bot_token: str = ""
    telegram_channel_id: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    max_per_cycle: int = DEFAULT_MAX_PER_CYCLE
    send_delay_seconds: float = 1.0
    rate_limit_cooldown_seconds: float = 5.0
    max_rate_limit_retries: int = 5

    # ------------- derived -------------
    @property
    def guard_margin(self) -> timedelta:
        return timedelta(minutes=self.guard_margin_minutes)

    @property
    def near_expiry_guard(self) -> timedelta:
        return timedelta(minutes=self.near_expiry_guard_minutes)

    @property
    def fallback_validity(self) -> timedelta:
        return timedelta(minutes=self.fallback_validity_minutes)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def effective_apply_url(self) -> str:
        return self.apply_url or self.website_url

    # ------------- constructors -------------
    @classmethod
    def from_config(
        cls,
        cfg: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        *,
        require_secrets: bool = True,
    ) -> Settings:
        """
        Build Settings from a flat config mapping plus environment overrides.

        Unknown keys are rejected so typos surface at startup.
        """
        env = os.environ if environ is None else environ
        raw = dict(cfg or {})

        known = {f.name: f for f in dataclasses.fields(cls)}
        unknown = sorted(set(raw) - set(known))
        if unknown:
            raise ConfigError(f"Unknown config key(s): {unknown}")

        for env_name, field_name in _ENV_OVERRIDES.items():
            val = env.get(env_name)
            if val is not None and str(val).strip():
                raw[field_name] = str(val).strip()

        kwargs: dict[str, Any] = {}
        for name, value in raw.items():
            kwargs[name] = _coerce(name, value, known[name].type)

        settings = cls(**kwargs)
        _validate_settings(settings, require_secrets=require_secrets)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _coerce(name: str, value: Any, declared: Any) -> Any:
    """Coerce strings from env/YAML into the field's declared scalar type."""
    kind = str(declared)
    try:
        if kind == "bool":
            return truthy(value)
        if kind == "int":
            return int(float(value))
        if kind == "float":
            return float(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{name}' must be a {kind} (got {value!r})") from err
    if value is None:
        return ""
    return str(value).strip()


def _validate_settings(s: Settings, *, require_secrets: bool) -> None:
    # Floors mirror the interactive setup: warn and fall back instead of failing.
    if s.poll_interval_ms < MIN_POLL_INTERVAL_MS:
        LOG.warning(
            "Polling interval must be at least %dms (got %d); using %dms.",
            MIN_POLL_INTERVAL_MS,
            s.poll_interval_ms,
            DEFAULT_POLL_INTERVAL_MS,
        )
        s.poll_interval_ms = DEFAULT_POLL_INTERVAL_MS
    if s.max_per_cycle < 1:
        LOG.warning("Max jobs per alert must be at least 1 (got %d); using %d.", s.max_per_cycle, DEFAULT_MAX_PER_CYCLE)
        s.max_per_cycle = DEFAULT_MAX_PER_CYCLE

    s.seen_policy = s.seen_policy.strip().lower()
    if s.seen_policy not in SEEN_POLICIES:
        raise ConfigError(f"'seen_policy' must be one of {SEEN_POLICIES} (got {s.seen_policy!r}).")
    if s.seen_capacity < 1:
        raise ConfigError("'seen_capacity' must be >= 1.")
    if not (1 <= s.seen_retain <= s.seen_capacity):
        raise ConfigError("'seen_retain' must be between 1 and 'seen_capacity'.")
    if s.executor_workers < 1:
        raise ConfigError("'executor_workers' must be >= 1.")

    if s.extraction_attempts < 1:
        raise ConfigError("'extraction_attempts' must be >= 1.")
    if s.extraction_retry_delay_seconds < 0:
        raise ConfigError("'extraction_retry_delay_seconds' must be >= 0.")
    for name in ("guard_margin_minutes", "near_expiry_guard_minutes"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' must be >= 0.")
    for name in (
        "fallback_validity_minutes",
        "token_refresh_minutes",
        "health_interval_minutes",
        "navigation_timeout_seconds",
        "http_timeout_seconds",
        "seen_clear_interval_seconds",
    ):
        if getattr(s, name) <= 0:
            raise ConfigError(f"'{name}' must be > 0.")
    if s.fallback_validity <= s.guard_margin:
        raise ConfigError("'fallback_validity_minutes' must exceed 'guard_margin_minutes'.")
    if s.settle_seconds < 0:
        raise ConfigError("'settle_seconds' must be >= 0.")
    if not (1 <= s.page_size <= 100):
        raise ConfigError("'page_size' must be between 1 and 100.")
    if s.hours_min > s.hours_max:
        raise ConfigError("'hours_min' cannot exceed 'hours_max'.")
    if s.max_rate_limit_retries < 0:
        raise ConfigError("'max_rate_limit_retries' must be >= 0.")

    for name in ("website_url", "graphql_url"):
        if not getattr(s, name).startswith(("http://", "https://")):
            raise ConfigError(f"'{name}' must be an http(s) URL.")

    if require_secrets:
        missing = [
            env_name
            for env_name, value in (
                ("TELEGRAM_BOT_TOKEN", s.telegram_bot_token),
                ("TELEGRAM_CHANNEL_ID", s.telegram_channel_id),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required secret(s): {', '.join(missing)} (set them or run 'setup').")
