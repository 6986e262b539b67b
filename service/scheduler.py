# service/scheduler.py
from __future__ import annotations

import logging
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from modules.hiring_watch.lib import logging_bridge
from modules.hiring_watch.lib.config import Settings
from modules.hiring_watch.lib.engine import PollEngine
from modules.hiring_watch.lib.health import HealthReporter
from modules.hiring_watch.lib.seen import SeenSet
from modules.hiring_watch.lib.token_manager import TokenLifecycleManager

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    func: Callable[[], Any]
    trigger: Any  # "apscheduler.triggers.base.BaseTrigger"
    summary: str
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int | None = None
    # High-frequency jobs log start/finish at DEBUG instead of INFO.
    quiet: bool = False


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        """
        Shut down APScheduler: pending runs are dropped, in-flight jobs finish
        on their executor threads.
        """
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return [job.id for job in self._scheduler.get_jobs()]


# ---- Module API -------------------------------------------------------------


def build_jobs(
    settings: Settings,
    *,
    engine: PollEngine,
    tokens: TokenLifecycleManager,
    seen: SeenSet,
    health: HealthReporter | None = None,
) -> list[JobSpec]:
    """
    The monitor's independent periodic jobs:
      - poll: one engine tick every poll_interval_ms
      - token_refresh: proactive renewal every token_refresh_minutes
      - seen_clear: only with seen_policy == "clear"
      - health: status summary every health_interval_minutes
    """
    jobs = [
        JobSpec(
            id="poll",
            func=engine.tick,
            trigger=IntervalTrigger(seconds=settings.poll_interval_seconds),
            summary=f"poll listings every {settings.poll_interval_ms}ms",
            misfire_grace_time=1,
            quiet=True,
        ),
        JobSpec(
            id="token_refresh",
            func=tokens.refresh,
            trigger=IntervalTrigger(minutes=settings.token_refresh_minutes),
            summary=f"renew token every {settings.token_refresh_minutes:g} min",
        ),
    ]
    if settings.seen_policy == "clear":
        jobs.append(
            JobSpec(
                id="seen_clear",
                func=seen.clear,
                trigger=IntervalTrigger(seconds=settings.seen_clear_interval_seconds),
                summary=f"clear seen ids every {settings.seen_clear_interval_seconds:g}s",
                quiet=True,
            )
        )
    if health is not None:
        jobs.append(
            JobSpec(
                id="health",
                func=health.report,
                trigger=IntervalTrigger(minutes=settings.health_interval_minutes),
                summary=f"health summary every {settings.health_interval_minutes:g} min",
            )
        )
    return jobs


def start(jobs: list[JobSpec], *, timezone: str = "UTC", executor_workers: int = 4) -> SchedulerController:
    """
    Build an APScheduler instance, add jobs, and start it.
    Returns a SchedulerController that exposes stop() and join().

    APScheduler 3.x prefers a pytz scheduler timezone.
    """
    tz = _resolve_timezone(timezone)

    job_defaults = {
        "coalesce": True,  # run only the latest if many were missed
        "max_instances": 1,
    }
    # One worker per job at most is ever busy; extra headroom is harmless.
    executors = {"default": ThreadPoolExecutor(max(executor_workers, len(jobs)))}
    jobstores = {"default": MemoryJobStore()}

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors=executors,
        jobstores=jobstores,
    )
    for spec in jobs:
        _add_job(scheduler, spec)

    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


# ---- Helpers ----------------------------------------------------------------


def _resolve_timezone(tz_name: str | None):
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register the APScheduler job with a wrapper that:
      - logs start/finish + duration (DEBUG for quiet jobs)
      - catches and logs every exception so a failed run never kills the job
      - writes a structured record on error, and on success for non-quiet jobs
    """
    level = logging.DEBUG if spec.quiet else logging.INFO

    def _job_wrapper():
        started = _time.monotonic()
        LOG.log(level, "Job[%s] starting", spec.id)
        try:
            spec.func()
        except Exception as e:
            duration = _time.monotonic() - started
            LOG.exception("Job[%s] raised an exception.", spec.id)
            logging_bridge.error(
                "job_failed",
                job_id=spec.id,
                error=str(e),
                error_type=type(e).__name__,
                duration_s=round(duration, 3),
            )
            return

        duration = _time.monotonic() - started
        LOG.log(level, "Job[%s] finished in %.3fs", spec.id, duration)
        if not spec.quiet:
            logging_bridge.activity("job_finished", job_id=spec.id, duration_s=round(duration, 3))

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        name=spec.summary,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    LOG.info("Registered job[%s]: %s", spec.id, spec.summary)
