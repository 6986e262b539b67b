from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import pytz
import requests

from .config import Settings
from .errors import ApiRejected, ApiTransientError
from .http_client import HttpClient
from .models import Listing

LOG = logging.getLogger(__name__)

OPERATION = "searchJobCardsByLocation"

_JOB_CARD_FIELDS = (
    "jobId",
    "jobTitle",
    "city",
    "state",
    "locationName",
    "totalPayRateMin",
    "totalPayRateMax",
    "currencyCode",
    "totalPayRateMinL10N",
    "totalPayRateMaxL10N",
    "bonusPay",
    "bonusPayL10N",
    "jobType",
    "employmentType",
    "jobTypeL10N",
    "employmentTypeL10N",
    "scheduleCount",
    "featuredJob",
    "bonusJob",
    "tagLine",
    "bannerText",
    "geoClusterDescription",
    "distance",
)


def _query(fields: tuple[str, ...]) -> str:
    body = "\n        ".join(fields)
    return (
        f"query {OPERATION}($searchJobRequest: SearchJobRequest!) {{\n"
        f"  {OPERATION}(searchJobRequest: $searchJobRequest) {{\n"
        f"    nextToken\n"
        f"    jobCards {{\n        {body}\n    }}\n"
        f"  }}\n"
        f"}}"
    )


SEARCH_QUERY = _query(_JOB_CARD_FIELDS)
VERIFY_QUERY = _query(("jobId", "jobTitle"))

REJECTED_STATUSES = (401, 403)


class ListingsClient:
    """
    Thin client for the job-card GraphQL search.

    search() maps status codes onto the monitor's error taxonomy:
    401/403 -> ApiRejected, anything else that is not a usable 2xx JSON
    payload -> ApiTransientError.
    """

    def __init__(
        self,
        settings: Settings,
        http: HttpClient | None = None,
        *,
        today: Callable[[], date] | None = None,
    ):
        self.settings = settings
        self.http = http or HttpClient(timeout=settings.http_timeout_seconds, user_agent=settings.user_agent)
        self._today = today or self._today_in_zone

    # ---- request shape ----
    def _today_in_zone(self) -> date:
        return datetime.now(pytz.timezone(self.settings.timezone)).date()

    def headers(self, token: str) -> dict[str, str]:
        s = self.settings
        return {
            "accept": "*/*",
            "accept-language": f"{s.locale},en;q=0.9",
            "authorization": f"Bearer {token}",
            "content-type": "application/json",
            "country": s.country,
            "iscanary": "false",
            "origin": s.origin,
            "referer": f"{s.origin}/",
            "user-agent": s.user_agent,
            "x-amz-user-agent": "aws-amplify/5.0.0 api/1 framework/1",
        }

    def build_request(self, page_size: int | None = None, *, minimal: bool = False) -> dict[str, Any]:
        s = self.settings
        return {
            "operationName": OPERATION,
            "variables": {
                "searchJobRequest": {
                    "locale": s.locale,
                    "country": s.country,
                    "keyWords": s.keywords,
                    "equalFilters": [],
                    "containFilters": [{"key": "isPrivateSchedule", "val": ["false"]}],
                    "rangeFilters": [
                        {"key": "hoursPerWeek", "range": {"minimum": s.hours_min, "maximum": s.hours_max}}
                    ],
                    "dateFilters": [
                        {"key": "firstDayOnSite", "range": {"startDate": self._today().isoformat()}}
                    ],
                    "sorters": [],
                    "pageSize": page_size or s.page_size,
                    "consolidateSchedule": True,
                }
            },
            "query": VERIFY_QUERY if minimal else SEARCH_QUERY,
        }

    # ---- operations ----
    def search(self, token: str) -> list[Listing]:
        """Fetch the first page of listings. Raises ApiRejected / ApiTransientError."""
        try:
            resp = self.http.post_json(self.settings.graphql_url, self.build_request(), headers=self.headers(token))
        except requests.RequestException as e:
            raise ApiTransientError(f"listings request failed: {e}") from e

        if resp.status_code in REJECTED_STATUSES:
            raise ApiRejected(resp.status_code)
        if not 200 <= resp.status_code < 300:
            raise ApiTransientError(f"listings API returned HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            preview = resp.text[:200].replace("\n", " ")
            raise ApiTransientError(f"listings API sent invalid JSON; body starts: {preview!r}") from e
        if not isinstance(payload, dict):
            raise ApiTransientError("listings API sent a non-object JSON payload")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            message = first.get("message") if isinstance(first, dict) else first
            raise ApiTransientError(f"listings API error: {message}")

        result = (payload.get("data") or {}).get(OPERATION)
        if not result:
            LOG.info("Listings response carried no data")
            return []

        listings: list[Listing] = []
        for card in result.get("jobCards") or []:
            try:
                listings.append(Listing.from_job_card(card))
            except (AttributeError, ValueError):
                LOG.warning("Skipping malformed job card: %r", card)
        return listings

    def verify(self, token: str) -> bool:
        """Minimal pageSize=1 query; True only on HTTP 200."""
        try:
            resp = self.http.post_json(
                self.settings.graphql_url,
                self.build_request(page_size=1, minimal=True),
                headers=self.headers(token),
            )
        except requests.RequestException as e:
            LOG.warning("Token verification request failed: %s", e)
            return False
        LOG.info("Token verification: HTTP %s", resp.status_code)
        return resp.status_code == 200

    def close(self) -> None:
        self.http.close()
