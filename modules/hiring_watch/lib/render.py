from __future__ import annotations

from datetime import datetime

from . import utils
from .models import Listing


def _pay_line(listing: Listing) -> str | None:
    if listing.pay_min_l10n and listing.pay_max_l10n:
        return f"{listing.pay_min_l10n} - {listing.pay_max_l10n}"
    if listing.pay_min is not None and listing.pay_max is not None:
        unit = f" {listing.currency}" if listing.currency else ""
        return f"{listing.pay_min:.2f} - {listing.pay_max:.2f}{unit}"
    return None


def _distance(value: float) -> str:
    return f"{value:g}"


def format_listing(listing: Listing, *, apply_url: str, alert_time: datetime) -> str:
    """
    Build one Telegram message (HTML parse mode) for a listing.

    Every dynamic value is escaped; the only markup we emit is <b> around the
    headline and the <a> wrapper of the apply link.
    """
    e = utils.esc
    lines: list[str] = []
    if listing.location_name:
        lines.append(f"<b>{e(listing.location_name)}</b>")
    lines.append(f"<b>{e(listing.title or '(untitled job)')}</b>")

    pay = _pay_line(listing)
    if pay:
        lines.append(f"Pay: {e(pay)}")
    if listing.bonus_pay and listing.bonus_pay > 0:
        lines.append(f"Bonus: {e(listing.bonus_pay_l10n or listing.bonus_pay)}")
    if listing.job_type:
        lines.append(f"Type: {e(listing.job_type)}")
    if listing.employment_type:
        lines.append(f"Employment: {e(listing.employment_type)}")
    if listing.schedule_count:
        lines.append(f"Schedules: {listing.schedule_count} available")
    if listing.tag_line:
        lines.append(e(listing.tag_line))
    if listing.banner_text:
        lines.append(e(listing.banner_text))
    lines.append(f"Job ID: {e(listing.job_id)}")
    if listing.distance:
        lines.append(f"Distance: {_distance(listing.distance)}km")
    lines.append(f'Apply: <a href="{e(apply_url)}">{e(apply_url)}</a>')
    lines.append(f"Alert time: {e(alert_time.strftime('%Y-%m-%d %H:%M:%S %Z').strip())}")
    return "\n".join(lines)
