from types import SimpleNamespace

from apscheduler.triggers.interval import IntervalTrigger

from service import scheduler as S


def _components():
    return SimpleNamespace(
        engine=SimpleNamespace(tick=lambda: None),
        tokens=SimpleNamespace(refresh=lambda: None),
        seen=SimpleNamespace(clear=lambda: 0),
        health=SimpleNamespace(report=lambda: {}),
    )


def test_trim_policy_registers_no_clear_job(settings):
    c = _components()
    jobs = S.build_jobs(settings, engine=c.engine, tokens=c.tokens, seen=c.seen, health=c.health)
    assert [j.id for j in jobs] == ["poll", "token_refresh", "health"]

    poll = jobs[0]
    assert poll.trigger.interval.total_seconds() == 1.0
    assert poll.max_instances == 1 and poll.coalesce is True
    assert jobs[1].trigger.interval.total_seconds() == 55 * 60


def test_clear_policy_adds_clear_timer(settings):
    settings.seen_policy = "clear"
    c = _components()
    jobs = S.build_jobs(settings, engine=c.engine, tokens=c.tokens, seen=c.seen)
    clear = next(j for j in jobs if j.id == "seen_clear")
    assert clear.trigger.interval.total_seconds() == 30
    assert "health" not in [j.id for j in jobs]


def test_start_registers_jobs_and_stop_is_idempotent():
    jobs = [S.JobSpec(id="noop", func=lambda: None, trigger=IntervalTrigger(hours=1), summary="noop")]
    ctl = S.start(jobs, timezone="America/Toronto")
    try:
        assert list(ctl.get_job_ids()) == ["noop"]
    finally:
        ctl.stop()
    assert ctl.join(timeout=1)
    ctl.stop()


def test_job_wrapper_swallows_and_logs_failures(caplog):
    calls = []

    def boom():
        calls.append(1)
        raise RuntimeError("extraction exploded")

    jobs = [S.JobSpec(id="boom", func=boom, trigger=IntervalTrigger(hours=1), summary="boom")]
    ctl = S.start(jobs, timezone="Not/AZone")
    try:
        wrapper = ctl._scheduler.get_job("boom").func
        wrapper()  # must not raise
    finally:
        ctl.stop()

    assert calls == [1]
    assert "Job[boom] raised an exception." in caplog.text
