from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


@dataclass(frozen=True)
class Credential:
    """
    A bearer token plus what we know about its lifetime.

    Immutable: renewal replaces the whole object. `expiry_assumed` is True when
    the token carried no decodable `exp` claim and the fallback window was used.
    """

    token: str = field(repr=False)
    expires_at: datetime
    source: str
    issued_at: datetime | None = None
    expiry_assumed: bool = False

    def usable_until(self, guard: timedelta) -> datetime:
        return self.expires_at - guard

    def is_usable(self, now: datetime, guard: timedelta) -> bool:
        return now < self.usable_until(guard)

    def seconds_left(self, now: datetime) -> int:
        return int((self.expires_at - now).total_seconds())


@dataclass(frozen=True)
class BrowserStorage:
    """Key/value snapshot of a page's localStorage and sessionStorage."""

    local: dict[str, str] = field(default_factory=dict)
    session: dict[str, str] = field(default_factory=dict)


def _str(v: Any) -> str:
    return "" if v is None else str(v).strip()


def _float_or_none(v: Any) -> float | None:
    try:
        return float(v) if v not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _int_or_zero(v: Any) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class Listing:
    """
    One job card as returned by the listings API. Identity is `job_id` only.
    """

    job_id: str
    title: str = ""
    city: str = ""
    state: str = ""
    location_name: str = ""
    pay_min: float | None = None
    pay_max: float | None = None
    currency: str = ""
    pay_min_l10n: str = ""
    pay_max_l10n: str = ""
    bonus_pay: float | None = None
    bonus_pay_l10n: str = ""
    job_type: str = ""
    employment_type: str = ""
    schedule_count: int = 0
    tag_line: str = ""
    banner_text: str = ""
    distance: float | None = None
    featured: bool = False
    bonus_job: bool = False

    @classmethod
    def from_job_card(cls, card: dict[str, Any]) -> Listing:
        """
        Map a GraphQL `jobCards[]` entry. Raises ValueError if `jobId` is missing.
        """
        job_id = _str(card.get("jobId"))
        if not job_id:
            raise ValueError("job card without jobId")
        return cls(
            job_id=job_id,
            title=_str(card.get("jobTitle")),
            city=_str(card.get("city")),
            state=_str(card.get("state")),
            location_name=_str(card.get("locationName")),
            pay_min=_float_or_none(card.get("totalPayRateMin")),
            pay_max=_float_or_none(card.get("totalPayRateMax")),
            currency=_str(card.get("currencyCode")),
            pay_min_l10n=_str(card.get("totalPayRateMinL10N")),
            pay_max_l10n=_str(card.get("totalPayRateMaxL10N")),
            bonus_pay=_float_or_none(card.get("bonusPay")),
            bonus_pay_l10n=_str(card.get("bonusPayL10N")),
            job_type=_str(card.get("jobTypeL10N") or card.get("jobType")),
            employment_type=_str(card.get("employmentTypeL10N") or card.get("employmentType")),
            schedule_count=_int_or_zero(card.get("scheduleCount")),
            tag_line=_str(card.get("tagLine")),
            banner_text=_str(card.get("bannerText")),
            distance=_float_or_none(card.get("distance")),
            featured=bool(card.get("featuredJob")),
            bonus_job=bool(card.get("bonusJob")),
        )


@dataclass
class DispatchReport:
    """Outcome of one dispatch call."""

    sent: int = 0
    failed: int = 0
    over_cap: int = 0
    failed_ids: list[str] = field(default_factory=list)


@dataclass
class PollCycleResult:
    """
    Ephemeral outcome of one tick.
    - fetched: every listing the API returned (first page only)
    - new: the subset not present in the SeenSet before this tick
    """

    fetched: list[Listing] = field(default_factory=list)
    new: list[Listing] = field(default_factory=list)
    report: DispatchReport | None = None
    retried_auth: bool = False
