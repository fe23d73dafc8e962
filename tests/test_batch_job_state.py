"""
tests/test_batch_job_state.py

Pure unit tests for the batch job state types and transitions.

Coverage
--------
- Retry only from Failed; resets progress, error and log; bumps created_at
- Cancel only from Pending or Processing; fixed message
- Completion and failure carry the right fields
- Release keeps queue position and log
- Execution log line format
- Mapper round trip through the flat record
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.domain import batch_job as jobs
from app.domain.batch_job import (
    BatchJobStatus,
    BatchJobType,
    CompletedJob,
    FailedJob,
    PendingJob,
    ProcessingJob,
)
from app.domain.errors import ConflictError
from app.mappers.batch_job_mapper import to_domain, to_record, to_values
from db.models.batch_job import BatchJobRecord

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _processing() -> ProcessingJob:
    pending = jobs.new_job(BatchJobType.CITY_INGESTION, "Utrecht", now=T0)
    return jobs.start(pending, now=T0 + timedelta(minutes=1))


class TestTransitions:
    def test_new_job_is_pending_with_zero_progress(self) -> None:
        job = jobs.new_job(BatchJobType.CITY_INGESTION, "Utrecht", now=T0)
        assert job.status is BatchJobStatus.PENDING
        assert job.progress == 0
        assert job.execution_log is None

    def test_complete_sets_progress_100(self) -> None:
        done = jobs.complete(_processing(), "Processed 3 neighborhoods.", now=T0 + timedelta(minutes=5))
        assert isinstance(done, CompletedJob)
        assert done.progress == 100
        assert done.completed_at == T0 + timedelta(minutes=5)
        assert not hasattr(done, "error")

    def test_fail_uses_generic_message_by_default(self) -> None:
        failed = jobs.fail(jobs.set_progress(_processing(), 40), now=T0)
        assert failed.error == jobs.INTERNAL_ERROR_MESSAGE
        assert failed.progress == 40

    def test_set_progress_is_clamped(self) -> None:
        assert jobs.set_progress(_processing(), 140).progress == 100
        assert jobs.set_progress(_processing(), -3).progress == 0

    def test_retry_from_failed(self) -> None:
        failed = jobs.fail(jobs.append_log(jobs.set_progress(_processing(), 60), "boom"), now=T0)
        later = T0 + timedelta(hours=2)
        retried = jobs.retry(failed, now=later)
        assert isinstance(retried, PendingJob)
        assert retried.progress == 0
        assert retried.execution_log is None
        assert retried.created_at == later
        assert not hasattr(retried, "error")

    @pytest.mark.parametrize(
        "job",
        [
            jobs.new_job(BatchJobType.CITY_INGESTION, "Utrecht", now=T0),
            _processing(),
            jobs.complete(_processing(), "done", now=T0),
        ],
    )
    def test_retry_rejected_unless_failed(self, job) -> None:
        with pytest.raises(ConflictError):
            jobs.retry(job)

    def test_cancel_pending(self) -> None:
        cancelled = jobs.cancel(jobs.new_job(BatchJobType.MAP_GENERATION, "Delft", now=T0), now=T0)
        assert isinstance(cancelled, FailedJob)
        assert cancelled.error == "Job cancelled by user."
        assert cancelled.execution_log.endswith("Job cancelled by user.")

    def test_cancel_processing_keeps_progress(self) -> None:
        cancelled = jobs.cancel(jobs.set_progress(_processing(), 30), now=T0)
        assert cancelled.error == jobs.CANCELLED_MESSAGE
        assert cancelled.progress == 30

    @pytest.mark.parametrize(
        "job",
        [
            jobs.complete(_processing(), "done", now=T0),
            jobs.fail(_processing(), now=T0),
        ],
    )
    def test_cancel_rejected_for_terminal_jobs(self, job) -> None:
        with pytest.raises(ConflictError):
            jobs.cancel(job)

    def test_release_keeps_created_at_and_log(self) -> None:
        processing = jobs.append_log(_processing(), "started", now=T0)
        released = jobs.release(processing, "shutting down", now=T0)
        assert released.created_at == T0
        assert released.execution_log.splitlines() == [
            "[2026-03-01 12:00:00] started",
            "[2026-03-01 12:00:00] shutting down",
        ]

    def test_log_entry_format(self) -> None:
        assert jobs.format_log_entry("hello", T0) == "[2026-03-01 12:00:00] hello"


class TestMapper:
    def test_pending_record_round_trip(self) -> None:
        job = jobs.new_job(BatchJobType.ALL_CITIES_INGESTION, "all", now=T0)
        assert to_domain(to_record(job)) == job

    def test_naive_timestamps_are_read_as_utc(self) -> None:
        record = BatchJobRecord(
            id=jobs.new_job(BatchJobType.CITY_INGESTION, "Ede", now=T0).id,
            job_type="CityIngestion",
            target="Ede",
            status="Processing",
            progress=20,
            created_at=T0.replace(tzinfo=None),
            started_at=T0.replace(tzinfo=None),
        )
        job = to_domain(record)
        assert isinstance(job, ProcessingJob)
        assert job.started_at.tzinfo is timezone.utc
        assert job.progress == 20

    def test_values_clear_fields_the_state_lacks(self) -> None:
        retried = jobs.retry(jobs.fail(_processing(), "x", now=T0), now=T0)
        values = to_values(retried)
        assert values["status"] == "Pending"
        assert values["error"] is None
        assert values["started_at"] is None
        assert values["execution_log"] is None

    def test_values_drop_lease_once_job_leaves_processing(self) -> None:
        processing = _processing()
        assert processing.lease_id is not None
        assert to_values(processing)["lease_id"] == processing.lease_id
        assert to_values(processing)["heartbeat_at"] == T0 + timedelta(minutes=1)

        values = to_values(jobs.fail(processing, "x", now=T0))
        assert values["lease_id"] is None
        assert values["heartbeat_at"] is None

    def test_heartbeat_only_moves_renewal_time(self) -> None:
        processing = _processing()
        renewed = jobs.heartbeat(processing, now=T0 + timedelta(minutes=5))
        assert renewed.heartbeat_at == T0 + timedelta(minutes=5)
        assert renewed.started_at == processing.started_at
        assert renewed.lease_id == processing.lease_id
