"""
OTP Background Jobs

The in-process caches only drop expired entries when they are read; this
sweep releases memory held by codes and counters nobody reads again.
Redis-backed caches expire on their own, so the job is only registered for
the in-memory store.
"""

import logging

from apscheduler.triggers.interval import IntervalTrigger

from daanbantayan.core.scheduler import register_job
from daanbantayan.modules.otp.store import OtpStore

logger = logging.getLogger(__name__)

JOB_ID_SWEEP_OTP_CACHE = "otp_cache_sweep"
SWEEP_INTERVAL_SECONDS = 60


def make_sweep_job(store: OtpStore):
    """Build the sweep coroutine function bound to ``store``."""

    async def sweep_otp_cache() -> int:
        removed = await store.purge_expired()
        if removed:
            logger.info(f"Swept {removed} expired OTP cache entries")
        return removed

    return sweep_otp_cache


def register_otp_jobs(store: OtpStore) -> None:
    """Register the OTP cache sweep. Call before the scheduler starts."""
    register_job(
        job_id=JOB_ID_SWEEP_OTP_CACHE,
        func=make_sweep_job(store),
        trigger=IntervalTrigger(seconds=SWEEP_INTERVAL_SECONDS),
    )
    logger.info(f"Registered job: {JOB_ID_SWEEP_OTP_CACHE} (interval: {SWEEP_INTERVAL_SECONDS}s)")
