# tests/conftest.py
import base64
import json
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from modules.hiring_watch.lib.config import Settings
from modules.hiring_watch.lib.models import Credential, Listing

FROZEN_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (real browser, real network).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that launch a real browser or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="hw-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    # A developer's real .env / shell must not leak into tests.
    for name in (
        "CONFIG_PATH",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHANNEL_ID",
        "LISTINGS_API_URL",
        "POLL_INTERVAL_MS",
        "MAX_JOBS_PER_ALERT",
        "SEEN_POLICY",
        "HEADLESS",
        "TZ",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------
def _b64url(obj: dict) -> str:
    raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def make_jwt(exp: datetime | None = None, iat: datetime | None = None, **claims) -> str:
    """A structurally valid (unsigned) JWT, always longer than 100 chars."""
    payload = {"sub": "candidate-" + "x" * 40, **claims}
    if exp is not None:
        payload["exp"] = int(exp.timestamp())
    if iat is not None:
        payload["iat"] = int(iat.timestamp())
    return f"{_b64url({'alg': 'HS256', 'typ': 'JWT'})}.{_b64url(payload)}.{'s' * 43}"


def make_credential(expires_in: timedelta = timedelta(hours=1), *, now: datetime = FROZEN_NOW, tag: str = "t") -> Credential:
    return Credential(
        token=make_jwt(exp=now + expires_in, jti=tag),
        expires_at=now + expires_in,
        source=f"localStorage[{tag}]",
    )


def make_listing(job_id: str, **overrides) -> Listing:
    card = {
        "jobId": job_id,
        "jobTitle": f"Warehouse Associate {job_id}",
        "locationName": "Mississauga, ON",
        "city": "Mississauga",
        "state": "ON",
        "totalPayRateMinL10N": "$19.50",
        "totalPayRateMaxL10N": "$21.00",
        "scheduleCount": 3,
        **overrides,
    }
    return Listing.from_job_card(card)


def job_card(job_id: str, **overrides) -> dict:
    return {"jobId": job_id, "jobTitle": f"Sortation Associate {job_id}", "locationName": "Brampton, ON", **overrides}


class FakeSource:
    """
    CredentialSource double. Each call pops the next outcome (a Credential or an
    exception instance); the last outcome repeats. `gate` lets tests hold an
    extraction open.
    """

    def __init__(self, *outcomes, gate: threading.Event | None = None):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.gate = gate
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def extract_credential(self) -> Credential:
        with self._lock:
            self.calls += 1
            idx = min(self.calls - 1, len(self.outcomes) - 1)
            outcome = self.outcomes[idx]
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------
@pytest.fixture
def frozen_utc():
    with freeze_time(FROZEN_NOW) as frozen:
        yield frozen


@pytest.fixture
def settings() -> Settings:
    """Fast Settings: no real delays, test secrets, fixed date zone."""
    return Settings(
        telegram_bot_token="123456:TEST-TOKEN",
        telegram_channel_id="@hiring_test",
        extraction_retry_delay_seconds=0,
        settle_seconds=0,
        send_delay_seconds=0,
        rate_limit_cooldown_seconds=0,
        timezone="America/Toronto",
    )
