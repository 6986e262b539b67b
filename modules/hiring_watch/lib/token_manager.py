from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from . import logging_bridge
from .errors import ExtractionFailed, TokenUnavailable
from .extractor import CredentialSource
from .models import Credential
from .utils import utcnow

LOG = logging.getLogger(__name__)


class TokenState(str, Enum):
    EMPTY = "EMPTY"
    EXTRACTING = "EXTRACTING"
    VALID = "VALID"
    NEAR_EXPIRY = "NEAR_EXPIRY"


class TokenLifecycleManager:
    """
    Owns the current Credential and serializes its renewal.

    At most one extraction runs at a time: the first caller that finds the
    credential missing or inside the guard margin becomes the leader and runs
    the CredentialSource in its own thread; everyone arriving meanwhile waits
    on the same Future and shares the outcome.

    A credential is only handed out while now < expires_at - guard_margin.
    """

    def __init__(
        self,
        source: CredentialSource,
        *,
        guard_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.guard_margin = guard_margin
        self.clock = clock
        self._lock = threading.Lock()
        self._credential: Credential | None = None
        self._inflight: Future[Credential] | None = None
        self._extractions = 0

    # ---- introspection ----
    @property
    def state(self) -> TokenState:
        with self._lock:
            return self._state_locked()

    @property
    def extractions(self) -> int:
        """Number of extractions started since construction."""
        return self._extractions

    def _state_locked(self) -> TokenState:
        if self._inflight is not None:
            return TokenState.EXTRACTING
        if self._credential is None:
            return TokenState.EMPTY
        if self._credential.is_usable(self.clock(), self.guard_margin):
            return TokenState.VALID
        return TokenState.NEAR_EXPIRY

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            state = self._state_locked()
            cred = self._credential
        out: dict[str, Any] = {"state": state.value}
        if cred is not None:
            out.update(
                expires_at=cred.expires_at.isoformat(),
                seconds_left=cred.seconds_left(self.clock()),
                source=cred.source,
                expiry_assumed=cred.expiry_assumed,
            )
        return out

    # ---- operations ----
    def get_valid_token(self) -> Credential:
        """
        Return a credential usable for at least `guard_margin`, extracting a new
        one when needed. Raises TokenUnavailable on any extraction failure.
        """
        with self._lock:
            cred = self._credential
            if cred is not None and cred.is_usable(self.clock(), self.guard_margin):
                return cred
            fut, leader = self._join_or_start_locked()
        if leader:
            self._run_extraction(fut)
        try:
            return fut.result()
        except Exception as e:
            raise TokenUnavailable(f"no valid token: {e}") from e

    def refresh(self) -> Credential:
        """
        Force a renewal (joins one already running). Raises the raw source
        error; the previous credential is kept on failure.
        """
        with self._lock:
            fut, leader = self._join_or_start_locked()
        if leader:
            self._run_extraction(fut)
        return fut.result()

    def invalidate(self, stale: Credential | None = None) -> bool:
        """
        Drop the current credential. With `stale`, only drop it if it is still
        the current one. Returns True when something was cleared.
        """
        with self._lock:
            if self._credential is None:
                return False
            if stale is not None and self._credential is not stale:
                LOG.debug("Ignoring invalidate for a credential that was already replaced")
                return False
            self._credential = None
        LOG.info("Token invalidated; state -> %s", TokenState.EMPTY.value)
        logging_bridge.activity("token_invalidated")
        return True

    # ---- internals ----
    def _join_or_start_locked(self) -> tuple[Future[Credential], bool]:
        if self._inflight is not None:
            return self._inflight, False
        fut: Future[Credential] = Future()
        self._inflight = fut
        self._extractions += 1
        LOG.info("Token state -> %s", TokenState.EXTRACTING.value)
        return fut, True

    def _run_extraction(self, fut: Future[Credential]) -> None:
        try:
            cred = self.source.extract_credential()
            if not cred.is_usable(self.clock(), self.guard_margin):
                raise ExtractionFailed(
                    f"extracted token expires at {cred.expires_at.isoformat()}, inside the guard margin"
                )
        except Exception as e:
            with self._lock:
                self._inflight = None
            LOG.error("Token extraction failed: %s", e)
            logging_bridge.error("token_renewal_failed", error=str(e), error_type=type(e).__name__)
            fut.set_exception(e)
            return
        except BaseException:
            # Interrupts must not strand waiters.
            with self._lock:
                self._inflight = None
            fut.set_exception(ExtractionFailed("extraction aborted"))
            raise

        with self._lock:
            self._credential = cred
            self._inflight = None
        LOG.info(
            "Token state -> %s (source=%s, expires=%s%s)",
            TokenState.VALID.value,
            cred.source,
            cred.expires_at.isoformat(),
            ", assumed" if cred.expiry_assumed else "",
        )
        fut.set_result(cred)
