"""
Repository for batch job persistence, queue claims and list queries.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from db.models.batch_job import BatchJobRecord

STATUS_PENDING = "Pending"
STATUS_PROCESSING = "Processing"

SORT_COLUMNS = {
    "createdAt": BatchJobRecord.created_at,
    "status": BatchJobRecord.status,
    "type": BatchJobRecord.job_type,
    "target": BatchJobRecord.target,
}
DEFAULT_SORT = "createdAt_desc"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class BatchJobRepository:
    """
    Row-level access to ``batch_jobs``. Callers own the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, record: BatchJobRecord) -> BatchJobRecord:
        self._session.add(record)
        self._session.flush()
        return record

    def get(self, job_id: uuid.UUID) -> BatchJobRecord | None:
        return self._session.get(BatchJobRecord, job_id, populate_existing=True)

    def get_lease(self, job_id: uuid.UUID) -> tuple[str | None, uuid.UUID | None]:
        """
        Current status and claim token of a job, or ``(None, None)`` if absent.
        """

        row = self._session.execute(
            select(BatchJobRecord.status, BatchJobRecord.lease_id).where(BatchJobRecord.id == job_id)
        ).first()
        if row is None:
            return None, None
        return row.status, row.lease_id

    def claim_next_pending(
        self,
        *,
        started_at: datetime,
        lease_id: uuid.UUID | None = None,
    ) -> BatchJobRecord | None:
        """
        Atomically move the oldest pending job to Processing under a new lease.

        The candidate is re-checked in the UPDATE predicate, so when another
        worker claims it first the row count is zero and None is returned.
        """

        candidate_id = self._session.scalar(
            select(BatchJobRecord.id)
            .where(BatchJobRecord.status == STATUS_PENDING)
            .order_by(BatchJobRecord.created_at.asc(), BatchJobRecord.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        if candidate_id is None:
            return None

        result = self._session.execute(
            update(BatchJobRecord)
            .where(BatchJobRecord.id == candidate_id, BatchJobRecord.status == STATUS_PENDING)
            .values(
                status=STATUS_PROCESSING,
                started_at=started_at,
                progress=0,
                lease_id=lease_id or uuid.uuid4(),
                heartbeat_at=started_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self.get(candidate_id)

    def update_if_status(
        self,
        job_id: uuid.UUID,
        *,
        expected_status: str,
        values: dict[str, Any],
        lease_id: uuid.UUID | None = None,
    ) -> bool:
        """
        Write ``values`` only while the row still has ``expected_status``.

        With ``lease_id`` the row must also still be held under that claim,
        so an executor whose lease was reclaimed cannot write to the job.
        """

        stmt = update(BatchJobRecord).where(
            BatchJobRecord.id == job_id,
            BatchJobRecord.status == expected_status,
        )
        if lease_id is not None:
            stmt = stmt.where(BatchJobRecord.lease_id == lease_id)
        result = self._session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_stale_processing(self, *, heartbeat_before: datetime) -> list[BatchJobRecord]:
        """
        Processing jobs whose lease was last renewed before the cutoff.
        """

        last_seen = func.coalesce(BatchJobRecord.heartbeat_at, BatchJobRecord.started_at)
        stmt = (
            select(BatchJobRecord)
            .where(
                BatchJobRecord.status == STATUS_PROCESSING,
                last_seen.is_not(None),
                last_seen < heartbeat_before,
            )
            .order_by(BatchJobRecord.created_at.asc())
        )
        return list(self._session.scalars(stmt).all())

    def list_recent(self, *, limit: int = 10) -> list[BatchJobRecord]:
        stmt = select(BatchJobRecord).order_by(BatchJobRecord.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_page(
        self,
        *,
        page: int,
        page_size: int,
        status: str | None = None,
        job_type: str | None = None,
        search: str | None = None,
        sort: str | None = None,
    ) -> tuple[list[BatchJobRecord], int]:
        stmt: Select[tuple[BatchJobRecord]] = select(BatchJobRecord)
        if status:
            stmt = stmt.where(BatchJobRecord.status == status)
        if job_type:
            stmt = stmt.where(BatchJobRecord.job_type == job_type)
        if search:
            stmt = stmt.where(BatchJobRecord.target.ilike(f"%{_escape_like(search)}%", escape="\\"))

        total = self._session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

        column_name, _, direction = (sort or DEFAULT_SORT).partition("_")
        column = SORT_COLUMNS.get(column_name, BatchJobRecord.created_at)
        ordering = column.asc() if direction == "asc" else column.desc()
        stmt = stmt.order_by(ordering, BatchJobRecord.id.asc())

        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        return list(self._session.scalars(stmt).all()), int(total)
