"""
app/api/routers/batch_jobs.py

Batch job enqueue, inspection, retry and cancel endpoints.
"""

from __future__ import annotations

from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import PageParams, get_page_params
from app.domain.errors import ConflictError, NotFoundError, ValidationFailure
from app.schemas.batch_jobs import (
    BatchJobCreateRequest,
    BatchJobDetailResponse,
    BatchJobPageResponse,
    BatchJobSummaryResponse,
)
from app.services.batch_job_service import BatchJobService, get_batch_job_service

router = APIRouter(prefix="/batch-jobs", tags=["batch-jobs"])


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, ValidationFailure):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.messages) from exc
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=BatchJobDetailResponse, status_code=status.HTTP_202_ACCEPTED)
def enqueue_batch_job(
    request: BatchJobCreateRequest,
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> BatchJobDetailResponse:
    try:
        job = job_service.enqueue(request.type, request.target)
    except ValidationFailure as exc:
        _raise_http(exc)
    return BatchJobDetailResponse.from_job(job)


@router.get("", response_model=BatchJobPageResponse)
def list_batch_jobs(
    paging: PageParams = Depends(get_page_params),
    job_status: str | None = Query(default=None, alias="status"),
    job_type: str | None = Query(default=None, alias="type"),
    search: str | None = Query(default=None, description="Substring match on target"),
    sort: str | None = Query(default=None, description="e.g. createdAt_desc, target_asc"),
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> BatchJobPageResponse:
    try:
        page = job_service.list_jobs(
            page=paging.page,
            page_size=paging.page_size,
            status=job_status,
            job_type=job_type,
            search=search,
            sort=sort,
        )
    except ValidationFailure as exc:
        _raise_http(exc)

    return BatchJobPageResponse(
        items=[BatchJobSummaryResponse.from_domain(item) for item in page.items],
        total_count=page.total_count,
        page=page.page,
        page_size=page.page_size,
        total_pages=page.total_pages,
        has_next_page=page.has_next_page,
        has_previous_page=page.has_previous_page,
    )


@router.get("/recent", response_model=list[BatchJobSummaryResponse])
def list_recent_batch_jobs(
    limit: int = Query(default=10, ge=1, le=100),
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> list[BatchJobSummaryResponse]:
    return [BatchJobSummaryResponse.from_domain(item) for item in job_service.list_recent(limit)]


@router.get("/{job_id}", response_model=BatchJobDetailResponse)
def get_batch_job(
    job_id: UUID,
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> BatchJobDetailResponse:
    try:
        job = job_service.get_job(job_id)
    except NotFoundError as exc:
        _raise_http(exc)
    return BatchJobDetailResponse.from_job(job)


@router.post("/{job_id}/retry", response_model=BatchJobDetailResponse)
def retry_batch_job(
    job_id: UUID,
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> BatchJobDetailResponse:
    try:
        job = job_service.retry(job_id)
    except (NotFoundError, ConflictError) as exc:
        _raise_http(exc)
    return BatchJobDetailResponse.from_job(job)


@router.post("/{job_id}/cancel", response_model=BatchJobDetailResponse)
def cancel_batch_job(
    job_id: UUID,
    job_service: BatchJobService = Depends(get_batch_job_service),
) -> BatchJobDetailResponse:
    try:
        job = job_service.cancel(job_id)
    except (NotFoundError, ConflictError) as exc:
        _raise_http(exc)
    return BatchJobDetailResponse.from_job(job)
