"""
Poll engine: one tick fetches the listing board, diffs it against the seen set,
and hands new listings to the dispatcher.

Features:
  - Non-reentrant ticks (an overlapping tick is skipped, never queued)
  - One bounded retry after the API rejects a credential
  - Every failure ends the tick; nothing here terminates the process
  - Structured summaries via `logging_bridge`
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime

from . import logging_bridge
from .api_client import ListingsClient
from .dispatcher import TelegramDispatcher
from .errors import ApiRejected, ApiTransientError, TokenUnavailable
from .models import Listing, PollCycleResult
from .seen import SeenSet
from .token_manager import TokenLifecycleManager
from .utils import utcnow

LOG = logging.getLogger(__name__)

# One initial fetch plus one retry with a renewed token.
MAX_FETCH_ATTEMPTS = 2


class PollEngine:
    def __init__(
        self,
        tokens: TokenLifecycleManager,
        client: ListingsClient,
        seen: SeenSet,
        dispatcher: TelegramDispatcher | None = None,
    ):
        self.tokens = tokens
        self.client = client
        self.seen = seen
        self.dispatcher = dispatcher
        self._tick_lock = threading.Lock()

        # Health counters (read without locking; approximate is fine).
        self.ticks = 0
        self.skipped_overlaps = 0
        self.last_poll_at: datetime | None = None
        self.last_error: str | None = None
        self.alerts_sent = 0

    # =========================================================================
    # TICK
    # =========================================================================
    def tick(self, *, send: bool = True) -> PollCycleResult | None:
        """
        Run one poll cycle. Returns the cycle result, or None when the tick
        was skipped or ended early.
        """
        if not self._tick_lock.acquire(blocking=False):
            self.skipped_overlaps += 1
            LOG.debug("Previous tick still running; skipping")
            return None
        try:
            return self._tick(send=send)
        finally:
            self._tick_lock.release()

    def _tick(self, *, send: bool) -> PollCycleResult | None:
        start_ns = time.perf_counter_ns()
        self.ticks += 1
        self.last_poll_at = utcnow()

        # ---------------------------------------------------------------------
        # FETCH (at most one retry after an auth rejection)
        # ---------------------------------------------------------------------
        retried = False
        for attempt in range(1, MAX_FETCH_ATTEMPTS + 1):
            try:
                cred = self.tokens.get_valid_token()
            except TokenUnavailable as e:
                self._fail("token_unavailable", e)
                return None
            try:
                fetched: list[Listing] = self.client.search(cred.token)
                break
            except ApiRejected as e:
                LOG.warning("Listings API rejected token (HTTP %s), attempt %d", e.status, attempt)
                self.tokens.invalidate(cred)
                if attempt == MAX_FETCH_ATTEMPTS:
                    self._fail("api_rejected", e)
                    return None
                retried = True
            except ApiTransientError as e:
                self._fail("api_transient", e)
                return None
        else:
            return None

        # ---------------------------------------------------------------------
        # DEDUPLICATE
        # ---------------------------------------------------------------------
        new = self.seen.filter_new(fetched)
        self.seen.record(fetched)
        result = PollCycleResult(fetched=fetched, new=new, retried_auth=retried)
        self.last_error = None

        # ---------------------------------------------------------------------
        # NOTIFY
        # ---------------------------------------------------------------------
        if new:
            LOG.info("Found %d new listing(s) out of %d", len(new), len(fetched))
            if send and self.dispatcher is not None:
                result.report = self.dispatcher.dispatch(new)
                self.alerts_sent += result.report.sent
        else:
            LOG.debug("No new listings (%d fetched)", len(fetched))

        total_us = int((time.perf_counter_ns() - start_ns) // 1000)
        if new or retried:
            logging_bridge.activity(
                "poll_summary",
                fetched=len(fetched),
                new=len(new),
                new_ids=[listing.job_id for listing in new],
                retried_auth=retried,
                sent=result.report.sent if result.report else 0,
                total_us=total_us,
            )
        return result

    def _fail(self, op: str, err: Exception) -> None:
        self.last_error = f"{type(err).__name__}: {err}"
        LOG.warning("Tick ended early (%s): %s", op, err)
        logging_bridge.error(op, error=str(err), error_type=type(err).__name__)
