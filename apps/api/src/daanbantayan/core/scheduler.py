"""
Background Job Scheduler

APScheduler (AsyncIO) wrapper tied to the FastAPI lifespan.

Jobs are registered by id with their trigger. Registration may happen before
the scheduler starts; pending registrations are scheduled by
``start_scheduler``. A failing run is logged by the event listener and the
job keeps its schedule.
"""

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

_scheduler: AsyncIOScheduler | None = None

# job id -> (coroutine function, trigger)
_job_registry: dict[str, tuple[JobFunc, BaseTrigger]] = {}


class SchedulerConfig:
    """Configuration for the background scheduler."""

    TIMEZONE = "UTC"

    JOB_DEFAULTS = {
        "coalesce": True,  # one run for a batch of missed runs
        "max_instances": 1,
        "misfire_grace_time": 30,
    }


def _on_job_event(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}", exc_info=event.exception)
    else:
        logger.debug(f"Job {event.job_id} finished")


def _schedule(scheduler: AsyncIOScheduler, job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
    logger.info(f"Scheduled job: {job_id}")


async def start_scheduler() -> AsyncIOScheduler:
    """
    Create and start the scheduler with every registered job.

    Returns:
        The running scheduler; an already running one is returned as is
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler(
        timezone=SchedulerConfig.TIMEZONE,
        job_defaults=SchedulerConfig.JOB_DEFAULTS,
    )
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, (func, trigger) in _job_registry.items():
        _schedule(_scheduler, job_id, func, trigger)

    _scheduler.start()
    logger.info(f"Background scheduler started with {len(_job_registry)} job(s)")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, waiting for running jobs to finish."""
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        return

    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Background scheduler stopped")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """
    Register ``func`` to run on ``trigger`` under ``job_id``.

    Re-registering an id replaces the previous job. If the scheduler is
    already running the job is scheduled right away.
    """
    _job_registry[job_id] = (func, trigger)
    if _scheduler is not None:
        _schedule(_scheduler, job_id, func, trigger)


def list_registered_jobs() -> list[dict[str, Any]]:
    """Registered job ids with their next run time (None until scheduled)."""
    jobs = []
    for job_id in _job_registry:
        next_run = None
        if _scheduler is not None:
            job = _scheduler.get_job(job_id)
            if job is not None and job.next_run_time is not None:
                next_run = job.next_run_time.isoformat()
        jobs.append({"job_id": job_id, "next_run_time": next_run})
    return jobs
