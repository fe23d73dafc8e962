"""
app/services/batch_job_executor.py

Claims one pending job at a time and drives it through its processor.

Every write the executor makes after the claim is conditional on the row
still being ``Processing`` under the lease taken at claim time. A user
cancel in between therefore always wins, and a worker whose lease was
reclaimed can no longer touch the job. Each progress or log write renews
the lease heartbeat.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from app.config import get_batch_job_settings
from app.domain import batch_job as jobs
from app.domain.batch_job import BatchJob, BatchJobStatus, BatchJobType, ProcessingJob
from app.domain.cancellation import CancellationToken
from app.domain.errors import OperationCancelledError, ProcessorFailure
from app.logging_utils import log_event, log_job_event
from app.mappers.batch_job_mapper import to_domain, to_values
from db.repositories.batch_job_repository import BatchJobRepository
from db.session import session_scope

logger = logging.getLogger(__name__)

LEASE_EXPIRED_MESSAGE = "Processing lease expired; job returned to the queue."
SHUTDOWN_MESSAGE = "Executor shutting down; job returned to the queue."


@dataclass(frozen=True)
class JobOutcome:
    summary: str
    result_payload: dict[str, Any] | None = None


class JobProgressTracker:
    """
    Persists progress and log lines for the job currently being processed.

    Raises ``OperationCancelledError`` as soon as the stored row is no longer
    ``Processing`` under this job's lease, which is how a user cancel or a
    reclaimed lease reaches a running processor.
    """

    def __init__(
        self,
        job: ProcessingJob,
        *,
        session_factory: sessionmaker[Session] | None = None,
        clock: Callable[[], datetime] = jobs.utc_now,
    ) -> None:
        self._job = job
        self._session_factory = session_factory
        self._clock = clock

    @property
    def job(self) -> ProcessingJob:
        return self._job

    def log(self, message: str) -> None:
        now = self._clock()
        self._save(jobs.append_log(self._job, message, now=now), now)

    def progress(self, value: int, message: str | None = None) -> None:
        now = self._clock()
        updated = jobs.set_progress(self._job, value)
        if message:
            updated = jobs.append_log(updated, message, now=now)
        self._save(updated, now)

    def ensure_active(self) -> None:
        """
        Renew the lease, raising if the job was cancelled or reclaimed.
        """

        self._save(self._job, self._clock())

    def _save(self, updated: ProcessingJob, now: datetime) -> None:
        updated = jobs.heartbeat(updated, now=now)
        with session_scope(self._session_factory) as session:
            written = BatchJobRepository(session).update_if_status(
                updated.id,
                expected_status=BatchJobStatus.PROCESSING.value,
                lease_id=updated.lease_id,
                values={
                    "progress": updated.progress,
                    "execution_log": updated.execution_log,
                    "heartbeat_at": updated.heartbeat_at,
                },
            )
        if not written:
            logger.info("Job no longer held job_id=%s lease_id=%s", updated.id, updated.lease_id)
            raise OperationCancelledError(jobs.CANCELLED_MESSAGE)
        self._job = updated


class JobProcessor(Protocol):
    def process(
        self,
        job: ProcessingJob,
        tracker: JobProgressTracker,
        ctx: CancellationToken,
    ) -> JobOutcome:
        ...


class BatchJobExecutor:
    def __init__(
        self,
        *,
        processors: Mapping[BatchJobType, JobProcessor],
        session_factory: sessionmaker[Session] | None = None,
        lease_timeout_seconds: int = 900,
        clock: Callable[[], datetime] = jobs.utc_now,
    ) -> None:
        self._processors = dict(processors)
        self._session_factory = session_factory
        self._lease_timeout = timedelta(seconds=lease_timeout_seconds)
        self._clock = clock

    def process_next_job(self, ctx: CancellationToken | None = None) -> BatchJob | None:
        """
        Claim the oldest pending job and run it to a terminal state.

        Returns the job as stored afterwards, or None when the queue is empty
        or the token was already cancelled.
        """

        ctx = ctx or CancellationToken.none()
        if ctx.cancelled:
            return None

        with session_scope(self._session_factory) as session:
            record = BatchJobRepository(session).claim_next_pending(
                started_at=self._clock(),
                lease_id=uuid.uuid4(),
            )
            claimed = to_domain(record) if record is not None else None
        if claimed is None:
            return None

        log_job_event(logger, logging.INFO, "batch_job_claimed", claimed)
        tracker = JobProgressTracker(claimed, session_factory=self._session_factory, clock=self._clock)

        try:
            tracker.log(f"Job started: {claimed.job_type.value} for '{claimed.target}'.")
            processor = self._processors.get(claimed.job_type)
            if processor is None:
                raise ProcessorFailure(f"No processor registered for job type {claimed.job_type.value}.")
            outcome = processor.process(tracker.job, tracker, ctx)
        except OperationCancelledError:
            if ctx.cancelled or ctx.expired:
                return self._release(tracker.job)
            status, lease_id = self._lease_state(claimed)
            if status == BatchJobStatus.PROCESSING.value and lease_id == claimed.lease_id:
                # Cancelled by something other than a user, shutdown or reclaim.
                return self._fail(tracker.job, "Operation cancelled unexpectedly.")
            if status == BatchJobStatus.PROCESSING.value:
                log_event(logger, logging.WARNING, "batch_job_lease_lost", job_id=claimed.id)
            else:
                log_event(logger, logging.INFO, "batch_job_cancel_observed", job_id=claimed.id)
            return self._reload(claimed)
        except Exception as exc:
            logger.exception("Batch job failed job_id=%s job_type=%s", claimed.id, claimed.job_type.value)
            return self._fail(tracker.job, f"Error: {type(exc).__name__}: {exc}")

        return self._complete(tracker.job, outcome)

    def reclaim_stale_jobs(self) -> int:
        """
        Return Processing jobs whose heartbeat is older than the lease timeout
        to Pending, keeping their original queue position.
        """

        now = self._clock()
        reclaimed = 0
        with session_scope(self._session_factory) as session:
            repository = BatchJobRepository(session)
            for record in repository.list_stale_processing(heartbeat_before=now - self._lease_timeout):
                stale = to_domain(record)
                if not isinstance(stale, ProcessingJob):
                    continue
                pending = jobs.release(stale, LEASE_EXPIRED_MESSAGE, now=now)
                if repository.update_if_status(
                    stale.id,
                    expected_status=BatchJobStatus.PROCESSING.value,
                    lease_id=stale.lease_id,
                    values=to_values(pending),
                ):
                    reclaimed += 1
                    log_job_event(
                        logger,
                        logging.WARNING,
                        "batch_job_reclaimed",
                        pending,
                        last_heartbeat_at=stale.heartbeat_at,
                    )
        return reclaimed

    def _complete(self, job: ProcessingJob, outcome: JobOutcome) -> BatchJob:
        now = self._clock()
        logged = jobs.append_log(job, "Job completed.", now=now)
        completed = jobs.complete(logged, outcome.summary, result_payload=outcome.result_payload, now=now)
        if not self._write(job, completed):
            return self._reload(job)
        log_job_event(logger, logging.INFO, "batch_job_completed", completed, summary=outcome.summary)
        return completed

    def _fail(self, job: ProcessingJob, detail: str) -> BatchJob:
        now = self._clock()
        logged = jobs.append_log(job, detail, now=now)
        failed = jobs.fail(logged, now=now)
        if not self._write(job, failed):
            return self._reload(job)
        log_job_event(logger, logging.ERROR, "batch_job_failed", failed)
        return failed

    def _release(self, job: ProcessingJob) -> BatchJob:
        pending = jobs.release(job, SHUTDOWN_MESSAGE, now=self._clock())
        if not self._write(job, pending):
            return self._reload(job)
        log_job_event(logger, logging.WARNING, "batch_job_released", pending)
        return pending

    def _write(self, held: ProcessingJob, updated: BatchJob) -> bool:
        with session_scope(self._session_factory) as session:
            return BatchJobRepository(session).update_if_status(
                updated.id,
                expected_status=BatchJobStatus.PROCESSING.value,
                lease_id=held.lease_id,
                values=to_values(updated),
            )

    def _lease_state(self, job: ProcessingJob) -> tuple[str | None, uuid.UUID | None]:
        with session_scope(self._session_factory) as session:
            return BatchJobRepository(session).get_lease(job.id)

    def _reload(self, job: ProcessingJob) -> BatchJob:
        with session_scope(self._session_factory) as session:
            record = BatchJobRepository(session).get(job.id)
            return to_domain(record) if record is not None else job


@lru_cache(maxsize=1)
def get_batch_job_executor() -> BatchJobExecutor:
    """
    Build and cache the executor with the live processors registered.
    """

    from app.services.all_cities_ingestion_processor import get_all_cities_ingestion_processor
    from app.services.city_ingestion_processor import get_city_ingestion_processor

    settings = get_batch_job_settings()
    return BatchJobExecutor(
        processors={
            BatchJobType.CITY_INGESTION: get_city_ingestion_processor(),
            BatchJobType.ALL_CITIES_INGESTION: get_all_cities_ingestion_processor(),
        },
        lease_timeout_seconds=settings.lease_timeout_seconds,
    )
