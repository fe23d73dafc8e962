"""
app/scheduler/jobs.py

APScheduler wiring for the batch job executor.

Schedule
--------
  batch_job_executor: every ``BATCH_JOB_POLL_INTERVAL_SECONDS`` (default 5s),
      reclaim Processing jobs whose lease expired, then process at most one
      pending job.

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; call ``shutdown_scheduler()`` on app shutdown so the
job in flight is released back to the queue instead of left Processing.
Each scheduler carries its own shutdown token, so a later lifespan in the
same process polls normally.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_batch_job_settings
from app.domain.cancellation import CancellationToken
from app.services.batch_job_executor import BatchJobExecutor, get_batch_job_executor

logger = logging.getLogger(__name__)

EXECUTOR_JOB_ID = "batch_job_executor"


def run_executor_tick(
    executor: BatchJobExecutor | None = None,
    ctx: CancellationToken | None = None,
) -> None:
    """
    One poll: reclaim stale leases, then process the next pending job.
    """

    executor = executor or get_batch_job_executor()
    ctx = ctx or CancellationToken.none()
    if ctx.cancelled:
        return

    try:
        reclaimed = executor.reclaim_stale_jobs()
        if reclaimed:
            logger.warning("Scheduler: reclaimed %s stale batch jobs", reclaimed)
        job = executor.process_next_job(ctx)
    except Exception:
        # The next tick retries; the scheduler thread must survive.
        logger.exception("Scheduler: batch executor tick failed")
        return

    if job is not None:
        logger.info("Scheduler: batch job finished job_id=%s status=%s", job.id, job.status.value)


def build_scheduler() -> BackgroundScheduler:
    """
    Returns a configured but *not yet started* ``BackgroundScheduler``.
    """

    settings = get_batch_job_settings()
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_executor_tick,
        trigger="interval",
        seconds=settings.poll_interval_seconds,
        id=EXECUTOR_JOB_ID,
        name="Batch job executor poll",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"ctx": CancellationToken()},
    )
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    """
    Cancel this scheduler's shutdown token, then wait for the tick in flight.
    """

    job = scheduler.get_job(EXECUTOR_JOB_ID)
    if job is not None:
        job.kwargs["ctx"].cancel()
    if scheduler.running:
        scheduler.shutdown(wait=True)
