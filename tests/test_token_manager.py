import threading
from datetime import timedelta

import pytest
from conftest import FROZEN_NOW, FakeSource, make_credential

from modules.hiring_watch.lib.errors import DriverUnavailable, ExtractionFailed, TokenUnavailable
from modules.hiring_watch.lib.token_manager import TokenLifecycleManager, TokenState

GUARD = timedelta(minutes=5)


def _manager(source, clock=lambda: FROZEN_NOW):
    return TokenLifecycleManager(source, guard_margin=GUARD, clock=clock)


def test_empty_manager_extracts_once_and_caches():
    cred = make_credential()
    src = FakeSource(cred)
    mgr = _manager(src)
    assert mgr.state is TokenState.EMPTY

    assert mgr.get_valid_token() is cred
    assert mgr.get_valid_token() is cred
    assert src.calls == 1
    assert mgr.state is TokenState.VALID


def test_concurrent_callers_share_one_extraction():
    gate = threading.Event()
    cred = make_credential()
    src = FakeSource(cred, gate=gate)
    mgr = _manager(src)

    results, errors = [], []

    def call():
        try:
            results.append(mgr.get_valid_token())
        except Exception as e:  # pragma: no cover - surfaced by the asserts below
            errors.append(e)

    threads = [threading.Thread(target=call) for _ in range(8)]
    for t in threads:
        t.start()
    assert src.entered.wait(timeout=5)
    assert mgr.state is TokenState.EXTRACTING
    gate.set()
    for t in threads:
        t.join(timeout=5)

    assert not errors
    assert src.calls == 1
    assert mgr.extractions == 1
    assert len(results) == 8 and all(r is cred for r in results)


def test_near_expiry_triggers_renewal(frozen_utc):
    from modules.hiring_watch.lib.utils import utcnow

    old = make_credential(timedelta(minutes=3), tag="old")
    new = make_credential(timedelta(hours=1), tag="new")
    src = FakeSource(new)
    mgr = _manager(src, clock=utcnow)
    mgr._credential = old
    assert mgr.state is TokenState.NEAR_EXPIRY

    assert mgr.get_valid_token() is new
    assert src.calls == 1


def test_returned_credential_always_respects_guard(frozen_utc):
    from modules.hiring_watch.lib.utils import utcnow

    src = FakeSource(make_credential(timedelta(minutes=6)))
    mgr = _manager(src, clock=utcnow)

    cred = mgr.get_valid_token()
    assert utcnow() < cred.expires_at - GUARD

    frozen_utc.tick(timedelta(minutes=2))
    src.outcomes = [make_credential(timedelta(minutes=60), now=utcnow(), tag="later")]
    cred = mgr.get_valid_token()
    assert utcnow() < cred.expires_at - GUARD
    assert src.calls == 2


def test_fresh_credential_inside_guard_is_rejected():
    src = FakeSource(make_credential(timedelta(minutes=4)))
    mgr = _manager(src)

    with pytest.raises(TokenUnavailable):
        mgr.get_valid_token()
    assert mgr.state is TokenState.EMPTY


def test_invalidate_forces_new_extraction():
    first = make_credential(tag="first")
    second = make_credential(tag="second")
    src = FakeSource(first, second)
    mgr = _manager(src)

    assert mgr.get_valid_token() is first
    assert mgr.invalidate() is True
    assert mgr.state is TokenState.EMPTY

    got = mgr.get_valid_token()
    assert got is second and got is not first


def test_invalidate_with_stale_credential_keeps_newer_one():
    first = make_credential(tag="first")
    second = make_credential(tag="second")
    mgr = _manager(FakeSource(first, second))

    mgr.get_valid_token()
    mgr.invalidate(first)
    current = mgr.get_valid_token()
    assert current is second

    assert mgr.invalidate(first) is False
    assert mgr.get_valid_token() is second


def test_extraction_failure_surfaces_as_token_unavailable():
    cause = ExtractionFailed("no token")
    mgr = _manager(FakeSource(cause))

    with pytest.raises(TokenUnavailable) as ei:
        mgr.get_valid_token()
    assert ei.value.__cause__ is cause
    assert mgr.state is TokenState.EMPTY


def test_refresh_raises_raw_error_and_keeps_previous_credential():
    good = make_credential()
    mgr = _manager(FakeSource(good, DriverUnavailable("gone")))
    mgr.get_valid_token()

    with pytest.raises(DriverUnavailable):
        mgr.refresh()
    assert mgr.get_valid_token() is good


def test_refresh_replaces_credential():
    first = make_credential(tag="first")
    second = make_credential(tag="second")
    src = FakeSource(first, second)
    mgr = _manager(src)
    mgr.get_valid_token()

    assert mgr.refresh() is second
    assert mgr.get_valid_token() is second
    assert src.calls == 2


def test_snapshot_reports_state_and_seconds_left():
    mgr = _manager(FakeSource(make_credential(timedelta(minutes=30))))
    assert mgr.snapshot() == {"state": "EMPTY"}

    mgr.get_valid_token()
    snap = mgr.snapshot()
    assert snap["state"] == "VALID"
    assert snap["seconds_left"] == 30 * 60


def test_unexpected_source_error_surfaces_as_token_unavailable():
    cause = RuntimeError("verifier blew up")
    src = FakeSource(cause, make_credential())
    mgr = _manager(src)

    with pytest.raises(TokenUnavailable) as ei:
        mgr.get_valid_token()
    assert ei.value.__cause__ is cause

    assert mgr.get_valid_token() is not None
    assert src.calls == 2
