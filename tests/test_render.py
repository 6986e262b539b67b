from datetime import datetime, timezone

from conftest import make_listing

from modules.hiring_watch.lib.render import format_listing

ALERT_AT = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
APPLY = "https://hiring.amazon.ca/app#/jobSearch"


def test_full_listing_message():
    listing = make_listing(
        "JOB-CA-0001",
        bonusPay=3.0,
        bonusPayL10N="$3.00",
        jobTypeL10N="Full Time",
        employmentTypeL10N="Regular",
        tagLine="Start this week",
        bannerText="Sign-on bonus",
        distance=12.5,
    )

    text = format_listing(listing, apply_url=APPLY, alert_time=ALERT_AT)
    lines = text.split("\n")

    assert lines[0] == "<b>Mississauga, ON</b>"
    assert lines[1] == "<b>Warehouse Associate JOB-CA-0001</b>"
    assert "Pay: $19.50 - $21.00" in lines
    assert "Bonus: $3.00" in lines
    assert "Type: Full Time" in lines
    assert "Employment: Regular" in lines
    assert "Schedules: 3 available" in lines
    assert "Start this week" in lines
    assert "Sign-on bonus" in lines
    assert "Job ID: JOB-CA-0001" in lines
    assert "Distance: 12.5km" in lines
    assert f'Apply: <a href="{APPLY}">{APPLY}</a>' in lines
    assert lines[-1] == "Alert time: 2025-01-01 12:00:00 UTC"


def test_optional_lines_are_omitted_and_text_is_escaped():
    listing = make_listing(
        "J<2>",
        jobTitle="Picker & Packer <night>",
        locationName="",
        totalPayRateMinL10N="",
        totalPayRateMaxL10N="",
        scheduleCount=0,
    )

    text = format_listing(listing, apply_url=APPLY, alert_time=ALERT_AT)

    assert text.startswith("<b>Picker &amp; Packer &lt;night&gt;</b>")
    assert "Job ID: J&lt;2&gt;" in text
    for label in ("Pay:", "Bonus:", "Type:", "Schedules:", "Distance:"):
        assert label not in text


def test_numeric_pay_fallback_uses_currency():
    listing = make_listing(
        "J1",
        totalPayRateMinL10N="",
        totalPayRateMaxL10N="",
        totalPayRateMin=19.5,
        totalPayRateMax=21,
        currencyCode="CAD",
    )
    text = format_listing(listing, apply_url=APPLY, alert_time=ALERT_AT)
    assert "Pay: 19.50 - 21.00 CAD" in text
