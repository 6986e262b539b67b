from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from typing import Any

import psutil

from . import logging_bridge
from .engine import PollEngine
from .seen import SeenSet
from .token_manager import TokenLifecycleManager
from .utils import utcnow

LOG = logging.getLogger(__name__)


class HealthReporter:
    """Periodic one-line status: uptime, memory, seen ids, last poll, token."""

    def __init__(
        self,
        engine: PollEngine,
        tokens: TokenLifecycleManager,
        seen: SeenSet,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = engine
        self.tokens = tokens
        self.seen = seen
        self.clock = clock
        self.started_at = clock()
        self._process = psutil.Process(os.getpid())

    def summary(self) -> dict[str, Any]:
        now = self.clock()
        last = self.engine.last_poll_at
        return {
            "uptime_seconds": int((now - self.started_at).total_seconds()),
            "rss_mb": self._process.memory_info().rss // (1024 * 1024),
            "seen_ids": len(self.seen),
            "ticks": self.engine.ticks,
            "skipped_overlaps": self.engine.skipped_overlaps,
            "alerts_sent": self.engine.alerts_sent,
            "last_poll_at": last.isoformat() if last else None,
            "last_error": self.engine.last_error,
            "credential_status": self.tokens.snapshot(),
        }

    def report(self) -> dict[str, Any]:
        s = self.summary()
        tok = s["credential_status"]
        LOG.info(
            "Health: up %ss, rss %sMB, %d seen, %d ticks, last poll %s, token %s (%ss left)",
            s["uptime_seconds"],
            s["rss_mb"],
            s["seen_ids"],
            s["ticks"],
            s["last_poll_at"] or "never",
            tok["state"],
            tok.get("seconds_left", "-"),
        )
        logging_bridge.activity("health", **s)
        return s
