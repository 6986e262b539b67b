from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime

import pytz
import requests

from . import logging_bridge
from .config import Settings
from .errors import DeliveryFailed, DeliveryRateLimited
from .http_client import HttpClient
from .models import DispatchReport, Listing
from .render import format_listing

LOG = logging.getLogger(__name__)


class TelegramDispatcher:
    """
    Sends one Telegram message per listing, capped per call and paced.

    A 429 pauses for the provider's retry_after (or the configured cooldown)
    and resends the same item; any other failure skips the item.
    """

    def __init__(
        self,
        settings: Settings,
        http: HttpClient | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.http = http or HttpClient(timeout=settings.http_timeout_seconds)
        self.sleep = sleep

    @property
    def endpoint(self) -> str:
        s = self.settings
        return f"{s.telegram_api_base.rstrip('/')}/bot{s.telegram_bot_token}/sendMessage"

    def _now(self) -> datetime:
        return datetime.now(pytz.timezone(self.settings.timezone))

    # ---- single send ----
    def send_text(self, text: str) -> None:
        """
        POST one message. Raises DeliveryRateLimited on 429 and DeliveryFailed
        on anything else that is not `ok: true`.
        """
        payload = {"chat_id": self.settings.telegram_channel_id, "text": text, "parse_mode": "HTML"}
        try:
            resp = self.http.post_json(self.endpoint, payload)
        except requests.RequestException as e:
            # The exception text can embed the bot URL; keep only the type.
            raise DeliveryFailed(f"network error ({type(e).__name__})") from e

        body: dict = {}
        try:
            parsed = resp.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            pass

        if resp.status_code == 429:
            retry_after = (body.get("parameters") or {}).get("retry_after")
            raise DeliveryRateLimited(float(retry_after) if isinstance(retry_after, (int, float)) else None)
        if not 200 <= resp.status_code < 300:
            raise DeliveryFailed(f"HTTP {resp.status_code}: {body.get('description', '')}".rstrip(": "))
        if not body.get("ok"):
            raise DeliveryFailed(f"provider refused message: {body.get('description', 'ok=false')}")

    def _send_with_cooldown(self, text: str) -> None:
        limit = self.settings.max_rate_limit_retries
        for attempt in range(limit + 1):
            try:
                self.send_text(text)
                return
            except DeliveryRateLimited as e:
                if attempt >= limit:
                    raise DeliveryFailed(f"still rate limited after {limit} cooldown(s)") from e
                wait = e.retry_after if e.retry_after else self.settings.rate_limit_cooldown_seconds
                LOG.warning("Telegram rate limit hit; cooling down %.1fs", wait)
                self.sleep(wait)

    # ---- batch ----
    def dispatch(self, listings: Sequence[Listing]) -> DispatchReport:
        cap = self.settings.max_per_cycle
        batch = list(listings[:cap])
        report = DispatchReport(over_cap=max(0, len(listings) - cap))
        if report.over_cap:
            LOG.warning("%d new listing(s) over the per-cycle cap of %d were not sent", report.over_cap, cap)

        for i, listing in enumerate(batch):
            if i:
                self.sleep(self.settings.send_delay_seconds)
            text = format_listing(listing, apply_url=self.settings.effective_apply_url, alert_time=self._now())
            try:
                self._send_with_cooldown(text)
            except DeliveryFailed as e:
                report.failed += 1
                report.failed_ids.append(listing.job_id)
                LOG.error("Alert for job %s failed: %s", listing.job_id, e)
                logging_bridge.error("alert_failed", job_id=listing.job_id, reason=str(e))
                continue
            report.sent += 1
            LOG.info("Alert sent for job %s (%s)", listing.job_id, listing.title)

        logging_bridge.activity(
            "alerts_dispatched", sent=report.sent, failed=report.failed, over_cap=report.over_cap
        )
        return report

    def close(self) -> None:
        self.http.close()
