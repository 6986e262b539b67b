from __future__ import annotations


class HiringWatchError(Exception):
    """Base class for every failure raised by the monitor."""


# ---- Browser / extraction ---------------------------------------------------


class DriverUnavailable(HiringWatchError):
    """The headless browser could not be launched (missing binaries, sandbox)."""


class ExtractionFailed(HiringWatchError):
    """No verified credential could be obtained from a browser session."""


class SessionLoadFailed(ExtractionFailed):
    """Navigation to the target site failed or timed out."""


class TokenNotFound(ExtractionFailed):
    """Storage was read but held nothing shaped like a bearer token."""


# ---- Lifecycle ----------------------------------------------------------------


class TokenUnavailable(HiringWatchError):
    """No valid credential can be handed out right now."""


# ---- Listings API -------------------------------------------------------------


class ApiRejected(HiringWatchError):
    """The listings API refused the credential (HTTP 401/403)."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"listings API rejected credential (HTTP {status})")
        self.status = status


class ApiTransientError(HiringWatchError):
    """Any other listings API failure; the tick is abandoned."""


# ---- Delivery -------------------------------------------------------------------


class DeliveryRateLimited(HiringWatchError):
    """The messaging provider asked us to slow down (HTTP 429)."""

    def __init__(self, retry_after: float | None = None) -> None:
        super().__init__(f"rate limited (retry_after={retry_after})")
        self.retry_after = retry_after


class DeliveryFailed(HiringWatchError):
    """A single message could not be delivered."""
