# modules/hiring_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, Settings
from .errors import (
    ApiRejected,
    ApiTransientError,
    DeliveryFailed,
    DeliveryRateLimited,
    DriverUnavailable,
    ExtractionFailed,
    HiringWatchError,
    SessionLoadFailed,
    TokenNotFound,
    TokenUnavailable,
)
from .models import Credential, DispatchReport, Listing, PollCycleResult

__all__ = [
    "ApiRejected",
    "ApiTransientError",
    "ConfigError",
    "Credential",
    "DeliveryFailed",
    "DeliveryRateLimited",
    "DispatchReport",
    "DriverUnavailable",
    "ExtractionFailed",
    "HiringWatchError",
    "Listing",
    "PollCycleResult",
    "SessionLoadFailed",
    "Settings",
    "TokenNotFound",
    "TokenUnavailable",
]
