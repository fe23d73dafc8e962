"""
Schemas for batch job enqueue, detail and list endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.domain.batch_job import BatchJob, BatchJobSummary


class BatchJobCreateRequest(BaseModel):
    type: str = Field(..., description="CityIngestion, MapGeneration or AllCitiesIngestion")
    target: str = Field(..., description="City name or other job target")


class BatchJobSummaryResponse(BaseModel):
    id: UUID
    type: str
    target: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    error: str | None = None
    result_summary: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, summary: BatchJobSummary) -> BatchJobSummaryResponse:
        return cls(
            id=summary.id,
            type=summary.job_type.value,
            target=summary.target,
            status=summary.status.value,
            progress=summary.progress,
            error=summary.error,
            result_summary=summary.result_summary,
            created_at=summary.created_at,
            started_at=summary.started_at,
            completed_at=summary.completed_at,
        )


class BatchJobDetailResponse(BatchJobSummaryResponse):
    execution_log: str | None = None
    result_payload: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: BatchJob) -> BatchJobDetailResponse:
        return cls(
            id=job.id,
            type=job.job_type.value,
            target=job.target,
            status=job.status.value,
            progress=job.progress,
            error=getattr(job, "error", None),
            result_summary=getattr(job, "result_summary", None),
            created_at=job.created_at,
            started_at=getattr(job, "started_at", None),
            completed_at=getattr(job, "completed_at", None),
            execution_log=job.execution_log,
            result_payload=getattr(job, "result_payload", None),
        )


class BatchJobPageResponse(BaseModel):
    items: list[BatchJobSummaryResponse] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    has_next_page: bool
    has_previous_page: bool
