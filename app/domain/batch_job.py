"""
app/domain/batch_job.py

Batch job lifecycle modelled as one frozen dataclass per state.

Only the fields that are meaningful for a state exist on it, so a completed
job cannot carry an error and a pending job cannot carry a completion time.
Transitions are pure functions returning the next state.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from app.domain.errors import ConflictError

CANCELLED_MESSAGE = "Job cancelled by user."
INTERNAL_ERROR_MESSAGE = "Job failed due to an internal error."

TARGET_MIN_LENGTH = 2
TARGET_MAX_LENGTH = 255


class BatchJobType(str, Enum):
    CITY_INGESTION = "CityIngestion"
    MAP_GENERATION = "MapGeneration"
    ALL_CITIES_INGESTION = "AllCitiesIngestion"


class BatchJobStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass(frozen=True)
class PendingJob:
    id: uuid.UUID
    job_type: BatchJobType
    target: str
    created_at: datetime
    execution_log: str | None = None

    @property
    def status(self) -> BatchJobStatus:
        return BatchJobStatus.PENDING

    @property
    def progress(self) -> int:
        return 0


@dataclass(frozen=True)
class ProcessingJob:
    id: uuid.UUID
    job_type: BatchJobType
    target: str
    created_at: datetime
    started_at: datetime
    progress: int = 0
    execution_log: str | None = None
    lease_id: uuid.UUID | None = None
    heartbeat_at: datetime | None = None

    @property
    def status(self) -> BatchJobStatus:
        return BatchJobStatus.PROCESSING


@dataclass(frozen=True)
class CompletedJob:
    id: uuid.UUID
    job_type: BatchJobType
    target: str
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime
    result_summary: str
    execution_log: str | None = None
    result_payload: dict[str, Any] | None = None

    @property
    def status(self) -> BatchJobStatus:
        return BatchJobStatus.COMPLETED

    @property
    def progress(self) -> int:
        return 100


@dataclass(frozen=True)
class FailedJob:
    id: uuid.UUID
    job_type: BatchJobType
    target: str
    created_at: datetime
    completed_at: datetime
    error: str
    started_at: datetime | None = None
    progress: int = 0
    execution_log: str | None = None
    result_payload: dict[str, Any] | None = None

    @property
    def status(self) -> BatchJobStatus:
        return BatchJobStatus.FAILED


BatchJob = Union[PendingJob, ProcessingJob, CompletedJob, FailedJob]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_log_entry(message: str, at: datetime | None = None) -> str:
    """
    Format one execution log line as ``[YYYY-MM-DD HH:MM:SS] message``.
    """

    stamp = (at or utc_now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"[{stamp}] {message}"


def _append_line(log: str | None, entry: str) -> str:
    if not log:
        return entry
    return f"{log}\n{entry}"


def new_job(job_type: BatchJobType, target: str, *, now: datetime | None = None) -> PendingJob:
    return PendingJob(
        id=uuid.uuid4(),
        job_type=job_type,
        target=target,
        created_at=now or utc_now(),
    )


def start(
    job: PendingJob,
    *,
    lease_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> ProcessingJob:
    now = now or utc_now()
    return ProcessingJob(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        created_at=job.created_at,
        started_at=now,
        progress=0,
        execution_log=job.execution_log,
        lease_id=lease_id or uuid.uuid4(),
        heartbeat_at=now,
    )


def append_log(job: ProcessingJob, message: str, *, now: datetime | None = None) -> ProcessingJob:
    return replace(job, execution_log=_append_line(job.execution_log, format_log_entry(message, now)))


def set_progress(job: ProcessingJob, progress: int) -> ProcessingJob:
    return replace(job, progress=max(0, min(100, int(progress))))


def heartbeat(job: ProcessingJob, *, now: datetime | None = None) -> ProcessingJob:
    """
    Renew the processing lease; the reclaim cutoff is measured from here.
    """

    return replace(job, heartbeat_at=now or utc_now())


def complete(
    job: ProcessingJob,
    summary: str,
    *,
    result_payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> CompletedJob:
    return CompletedJob(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=now or utc_now(),
        result_summary=summary,
        execution_log=job.execution_log,
        result_payload=result_payload,
    )


def fail(
    job: ProcessingJob,
    error: str = INTERNAL_ERROR_MESSAGE,
    *,
    result_payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> FailedJob:
    return FailedJob(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        created_at=job.created_at,
        completed_at=now or utc_now(),
        error=error,
        started_at=job.started_at,
        progress=job.progress,
        execution_log=job.execution_log,
        result_payload=result_payload,
    )


def cancel(job: BatchJob, *, now: datetime | None = None) -> FailedJob:
    """
    Force a pending or processing job into Failed with the cancellation message.
    """

    now = now or utc_now()
    if isinstance(job, PendingJob):
        return FailedJob(
            id=job.id,
            job_type=job.job_type,
            target=job.target,
            created_at=job.created_at,
            completed_at=now,
            error=CANCELLED_MESSAGE,
            execution_log=_append_line(job.execution_log, format_log_entry(CANCELLED_MESSAGE, now)),
        )
    if isinstance(job, ProcessingJob):
        cancelled = append_log(job, CANCELLED_MESSAGE, now=now)
        return fail(cancelled, CANCELLED_MESSAGE, now=now)
    raise ConflictError(f"Job {job.id} is {job.status.value} and cannot be cancelled.")


def retry(job: BatchJob, *, now: datetime | None = None) -> PendingJob:
    """
    Re-queue a failed job at the back of the queue with a clean log.
    """

    if not isinstance(job, FailedJob):
        raise ConflictError(f"Job {job.id} is {job.status.value}; only failed jobs can be retried.")
    return PendingJob(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        created_at=now or utc_now(),
        execution_log=None,
    )


def release(job: ProcessingJob, message: str, *, now: datetime | None = None) -> PendingJob:
    """
    Hand a processing job back to the queue, keeping its queue position and log.
    """

    logged = append_log(job, message, now=now)
    return PendingJob(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        created_at=job.created_at,
        execution_log=logged.execution_log,
    )


@dataclass(frozen=True)
class BatchJobSummary:
    """
    List-view projection of a job; the execution log is detail-only.
    """

    id: uuid.UUID
    job_type: BatchJobType
    target: str
    status: BatchJobStatus
    progress: int
    error: str | None
    result_summary: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


def summarize(job: BatchJob) -> BatchJobSummary:
    return BatchJobSummary(
        id=job.id,
        job_type=job.job_type,
        target=job.target,
        status=job.status,
        progress=job.progress,
        error=getattr(job, "error", None),
        result_summary=getattr(job, "result_summary", None),
        created_at=job.created_at,
        started_at=getattr(job, "started_at", None),
        completed_at=getattr(job, "completed_at", None),
    )
