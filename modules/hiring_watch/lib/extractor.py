from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from . import logging_bridge
from .browser import HeadlessSessionDriver
from .claims import find_token, resolve_expiry
from .config import Settings
from .errors import DriverUnavailable, ExtractionFailed, TokenNotFound
from .models import Credential
from .utils import utcnow

LOG = logging.getLogger(__name__)


class CredentialSource(Protocol):
    """Anything that can mint a verified Credential on demand."""

    def extract_credential(self) -> Credential: ...


class TokenExtractor:
    """
    Browser-backed CredentialSource.

    Each attempt uses a fresh driver session that is torn down before the next
    one. A candidate is only returned after `verifier(token)` accepts it.
    """

    def __init__(
        self,
        settings: Settings,
        verifier: Callable[[str], bool],
        *,
        driver_factory: Callable[[], HeadlessSessionDriver] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.verifier = verifier
        self.driver_factory = driver_factory or self._default_driver
        self.sleep = sleep
        self.clock = clock

    def _default_driver(self) -> HeadlessSessionDriver:
        s = self.settings
        return HeadlessSessionDriver(
            s.website_url,
            headless=s.headless,
            user_agent=s.user_agent,
            navigation_timeout_seconds=s.navigation_timeout_seconds,
            settle_seconds=s.settle_seconds,
        )

    def extract_credential(self) -> Credential:
        """
        Run up to `extraction_attempts` attempts. DriverUnavailable propagates
        immediately; anything else counts as a failed attempt and is retried
        after the configured delay.
        """
        attempts = self.settings.extraction_attempts
        last_err: ExtractionFailed | None = None
        for attempt in range(1, attempts + 1):
            LOG.info("Token extraction attempt %d/%d", attempt, attempts)
            try:
                cred = self._attempt(last_resort=attempt == attempts)
            except DriverUnavailable:
                raise
            except ExtractionFailed as e:
                last_err = e
            except Exception as e:
                LOG.debug("Unexpected error during extraction attempt %d", attempt, exc_info=True)
                last_err = ExtractionFailed(f"{type(e).__name__}: {e}")
                last_err.__cause__ = e
            else:
                logging_bridge.activity(
                    "token_extracted",
                    attempt=attempt,
                    source=cred.source,
                    expires_at=cred.expires_at.isoformat(),
                    expiry_assumed=cred.expiry_assumed,
                )
                return cred
            LOG.warning("Extraction attempt %d/%d failed: %s", attempt, attempts, last_err)
            logging_bridge.error("extraction_attempt_failed", attempt=attempt, reason=str(last_err))
            if attempt < attempts:
                self.sleep(self.settings.extraction_retry_delay_seconds)
        raise ExtractionFailed(f"no verified token after {attempts} attempt(s): {last_err}") from last_err

    def _attempt(self, *, last_resort: bool) -> Credential:
        with self.driver_factory() as driver:
            driver.load_session()
            storage = driver.read_storage()

        found = find_token(storage, self.settings.well_known_storage_key)
        if found is None:
            raise TokenNotFound(
                f"no token in storage ({len(storage.local)} local / {len(storage.session)} session keys)"
            )
        token, source = found
        LOG.info("Found token candidate in %s", source)

        now = self.clock()
        issued_at, expires_at, assumed = resolve_expiry(token, now, self.settings.fallback_validity)
        if assumed:
            LOG.info("Token has no readable expiry; assuming %s", expires_at.isoformat())
        if expires_at <= now:
            raise ExtractionFailed(f"token already expired at {expires_at.isoformat()}")
        if expires_at - now < self.settings.near_expiry_guard:
            if not last_resort:
                raise ExtractionFailed(f"token expires too soon ({expires_at.isoformat()})")
            LOG.warning("Accepting short-lived token on final attempt (expires %s)", expires_at.isoformat())

        if not self.verifier(token):
            raise ExtractionFailed("live verification rejected the token")

        return Credential(
            token=token,
            expires_at=expires_at,
            source=source,
            issued_at=issued_at,
            expiry_assumed=assumed,
        )
