"""
app/mappers/batch_job_mapper.py

Conversion between the flat ``batch_jobs`` row and the per-state job types.
"""

from __future__ import annotations

from typing import Any

from app.domain.batch_job import (
    BatchJob,
    BatchJobStatus,
    BatchJobType,
    CompletedJob,
    FailedJob,
    INTERNAL_ERROR_MESSAGE,
    PendingJob,
    ProcessingJob,
)
from db.base import as_utc
from db.models.batch_job import BatchJobRecord


class UnknownJobStateError(ValueError):
    """
    Raised when a stored row carries a status or type this build does not know.
    """


def to_domain(record: BatchJobRecord) -> BatchJob:
    try:
        job_type = BatchJobType(record.job_type)
        status = BatchJobStatus(record.status)
    except ValueError as exc:
        raise UnknownJobStateError(
            f"Job {record.id} has unknown type/status {record.job_type!r}/{record.status!r}."
        ) from exc

    created_at = as_utc(record.created_at)
    started_at = as_utc(record.started_at)
    completed_at = as_utc(record.completed_at)

    if status is BatchJobStatus.PENDING:
        return PendingJob(
            id=record.id,
            job_type=job_type,
            target=record.target,
            created_at=created_at,
            execution_log=record.execution_log,
        )
    if status is BatchJobStatus.PROCESSING:
        return ProcessingJob(
            id=record.id,
            job_type=job_type,
            target=record.target,
            created_at=created_at,
            started_at=started_at or created_at,
            progress=record.progress or 0,
            execution_log=record.execution_log,
            lease_id=record.lease_id,
            heartbeat_at=as_utc(record.heartbeat_at) or started_at,
        )
    if status is BatchJobStatus.COMPLETED:
        return CompletedJob(
            id=record.id,
            job_type=job_type,
            target=record.target,
            created_at=created_at,
            started_at=started_at,
            completed_at=completed_at or created_at,
            result_summary=record.result_summary or "",
            execution_log=record.execution_log,
            result_payload=record.result_payload,
        )
    return FailedJob(
        id=record.id,
        job_type=job_type,
        target=record.target,
        created_at=created_at,
        completed_at=completed_at or created_at,
        error=record.error or INTERNAL_ERROR_MESSAGE,
        started_at=started_at,
        progress=record.progress or 0,
        execution_log=record.execution_log,
        result_payload=record.result_payload,
    )


def to_values(job: BatchJob) -> dict[str, Any]:
    """
    Full column set for a state, clearing fields the state does not carry.

    Used for conditional UPDATEs, so ``id`` and ``job_type`` are left out.
    """

    values: dict[str, Any] = {
        "status": job.status.value,
        "target": job.target,
        "created_at": job.created_at,
        "progress": job.progress,
        "execution_log": job.execution_log,
        "started_at": None,
        "completed_at": None,
        "error": None,
        "result_summary": None,
        "result_payload": None,
        "lease_id": None,
        "heartbeat_at": None,
    }
    if isinstance(job, ProcessingJob):
        values.update(
            started_at=job.started_at,
            lease_id=job.lease_id,
            heartbeat_at=job.heartbeat_at,
        )
    elif isinstance(job, CompletedJob):
        values.update(
            started_at=job.started_at,
            completed_at=job.completed_at,
            result_summary=job.result_summary,
            result_payload=job.result_payload,
        )
    elif isinstance(job, FailedJob):
        values.update(
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
            result_payload=job.result_payload,
        )
    return values


def to_record(job: PendingJob) -> BatchJobRecord:
    return BatchJobRecord(
        id=job.id,
        job_type=job.job_type.value,
        target=job.target,
        status=job.status.value,
        progress=0,
        execution_log=job.execution_log,
        created_at=job.created_at,
        updated_at=job.created_at,
    )
