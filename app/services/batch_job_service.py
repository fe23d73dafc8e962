"""
app/services/batch_job_service.py

Queue-facing operations on batch jobs: enqueue, inspect, list, retry, cancel.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from app.domain import batch_job as jobs
from app.domain.batch_job import (
    BatchJob,
    BatchJobStatus,
    BatchJobSummary,
    BatchJobType,
    FailedJob,
    PendingJob,
    TARGET_MAX_LENGTH,
    TARGET_MIN_LENGTH,
)
from app.domain.errors import ConflictError, NotFoundError, ValidationFailure
from app.domain.pagination import PaginatedList
from app.logging_utils import log_job_event
from app.mappers.batch_job_mapper import to_domain, to_record, to_values
from db.repositories.batch_job_repository import SORT_COLUMNS, BatchJobRepository
from db.session import session_scope

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SORT_DIRECTIONS = ("asc", "desc")


def parse_job_type(value: BatchJobType | str) -> BatchJobType:
    if isinstance(value, BatchJobType):
        return value
    try:
        return BatchJobType((value or "").strip())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in BatchJobType)
        raise ValidationFailure(f"Unknown job type '{value}'. Allowed: {allowed}.") from exc


def parse_job_status(value: BatchJobStatus | str) -> BatchJobStatus:
    if isinstance(value, BatchJobStatus):
        return value
    try:
        return BatchJobStatus((value or "").strip())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in BatchJobStatus)
        raise ValidationFailure(f"Unknown job status '{value}'. Allowed: {allowed}.") from exc


def validate_target(target: str | None) -> str:
    cleaned = (target or "").strip()
    if not TARGET_MIN_LENGTH <= len(cleaned) <= TARGET_MAX_LENGTH:
        raise ValidationFailure(
            f"Target must be between {TARGET_MIN_LENGTH} and {TARGET_MAX_LENGTH} characters."
        )
    return cleaned


def validate_sort(sort: str | None) -> str | None:
    if not sort:
        return None
    column, _, direction = sort.partition("_")
    if column not in SORT_COLUMNS or direction not in SORT_DIRECTIONS:
        raise ValidationFailure(f"Unknown sort '{sort}'.")
    return sort


class BatchJobService:
    """
    Every state change is a conditional UPDATE on the current status, so a
    retry or cancel racing the executor surfaces as ``ConflictError``.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        clock: Callable[[], datetime] = jobs.utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def enqueue(self, job_type: BatchJobType | str, target: str) -> PendingJob:
        job = jobs.new_job(parse_job_type(job_type), validate_target(target), now=self._clock())
        with session_scope(self._session_factory) as session:
            BatchJobRepository(session).add(to_record(job))
        log_job_event(logger, logging.INFO, "batch_job_enqueued", job)
        return job

    def get_job(self, job_id: uuid.UUID) -> BatchJob:
        with session_scope(self._session_factory) as session:
            record = BatchJobRepository(session).get(job_id)
            if record is None:
                raise NotFoundError(f"Job {job_id} was not found.")
            return to_domain(record)

    def list_recent(self, limit: int = 10) -> list[BatchJobSummary]:
        with session_scope(self._session_factory) as session:
            records = BatchJobRepository(session).list_recent(limit=limit)
            return [jobs.summarize(to_domain(record)) for record in records]

    def list_jobs(
        self,
        *,
        page: int = 1,
        page_size: int = 20,
        status: str | None = None,
        job_type: str | None = None,
        search: str | None = None,
        sort: str | None = None,
    ) -> PaginatedList[BatchJobSummary]:
        page = max(1, page)
        page_size = max(1, min(MAX_PAGE_SIZE, page_size))
        status_value = parse_job_status(status).value if status else None
        type_value = parse_job_type(job_type).value if job_type else None
        search = (search or "").strip() or None

        with session_scope(self._session_factory) as session:
            records, total = BatchJobRepository(session).list_page(
                page=page,
                page_size=page_size,
                status=status_value,
                job_type=type_value,
                search=search,
                sort=validate_sort(sort),
            )
            items = [jobs.summarize(to_domain(record)) for record in records]
        return PaginatedList(items=items, total_count=total, page=page, page_size=page_size)

    def retry(self, job_id: uuid.UUID) -> PendingJob:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            repository = BatchJobRepository(session)
            current = self._load(repository, job_id)
            requeued = jobs.retry(current, now=now)
            self._write(repository, current, requeued)
        log_job_event(logger, logging.INFO, "batch_job_retried", requeued)
        return requeued

    def cancel(self, job_id: uuid.UUID) -> FailedJob:
        now = self._clock()
        with session_scope(self._session_factory) as session:
            repository = BatchJobRepository(session)
            current = self._load(repository, job_id)
            cancelled = jobs.cancel(current, now=now)
            self._write(repository, current, cancelled)
        log_job_event(logger, logging.INFO, "batch_job_cancelled", cancelled, previous_status=current.status)
        return cancelled

    @staticmethod
    def _load(repository: BatchJobRepository, job_id: uuid.UUID) -> BatchJob:
        record = repository.get(job_id)
        if record is None:
            raise NotFoundError(f"Job {job_id} was not found.")
        return to_domain(record)

    @staticmethod
    def _write(repository: BatchJobRepository, current: BatchJob, updated: BatchJob) -> None:
        written = repository.update_if_status(
            current.id,
            expected_status=current.status.value,
            values=to_values(updated),
        )
        if not written:
            raise ConflictError(f"Job {current.id} changed state concurrently; reload and try again.")


@lru_cache(maxsize=1)
def get_batch_job_service() -> BatchJobService:
    return BatchJobService()
