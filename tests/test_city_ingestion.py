"""
tests/test_city_ingestion.py

City and all-cities ingestion run through the executor against in-memory
SQLite with fake geo and source collaborators.

Coverage
--------
- City without neighborhoods completes with the fixed summary
- Mixed insert/update: existing rows keep their name, stats refresh, WOZ in EUR
- Re-running the same city adds no rows
- A neighborhood whose enrichment raises is skipped and reported
- Geo outage fails the job
- Neighborhoods within a batch run concurrently, capped at the batch size
- A user cancel during a batch stops the job before the next batch
- All-cities fan-out enqueues one CityIngestion job per municipality
- Municipality names outside the target length rules are skipped
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from app.domain.batch_job import BatchJobStatus, BatchJobType, INTERNAL_ERROR_MESSAGE
from app.domain.errors import SourceUnavailableError
from app.domain.neighborhood import NeighborhoodGeometry
from app.services.all_cities_ingestion_processor import AllCitiesIngestionProcessor
from app.services.batch_job_executor import BatchJobExecutor
from app.services.batch_job_service import BatchJobService
from app.services.city_ingestion_processor import CityIngestionProcessor, neighborhood_location
from db.models.neighborhood import Neighborhood
from db.session import session_scope
from tests.fakes import FakeGeoClient, make_report_service


def _geometries(count: int, *, start: int = 0) -> list[NeighborhoodGeometry]:
    return [
        NeighborhoodGeometry(
            code=f"BU0344{index:04d}",
            name=f"Buurt {index}",
            type="Buurt",
            latitude=52.09 + index * 0.001,
            longitude=5.12 + index * 0.001,
        )
        for index in range(start, start + count)
    ]


class FlakyReportService:
    """Delegates to a real report service but raises for selected neighborhood codes."""

    def __init__(self, failing_codes: set[str]) -> None:
        self._inner = make_report_service()
        self._failing = failing_codes

    def build_for_location(self, location, radius_meters, ctx=None, *, use_cache=True):
        if location.neighborhood_code in self._failing:
            raise RuntimeError(f"enrichment exploded for {location.neighborhood_code}")
        return self._inner.build_for_location(location, radius_meters, ctx, use_cache=use_cache)


class ConcurrencyRecordingReportService:
    """Holds every call at a barrier and records the peak number of calls in flight."""

    def __init__(self, parties: int) -> None:
        self._inner = make_report_service()
        self._barrier = threading.Barrier(parties, timeout=5)
        self._lock = threading.Lock()
        self._in_flight = 0
        self.peak = 0

    def build_for_location(self, location, radius_meters, ctx=None, *, use_cache=True):
        with self._lock:
            self._in_flight += 1
            self.peak = max(self.peak, self._in_flight)
        try:
            self._barrier.wait()
            return self._inner.build_for_location(location, radius_meters, ctx, use_cache=use_cache)
        finally:
            with self._lock:
                self._in_flight -= 1


class CancellingReportService:
    """Runs ``on_first_call`` once, then records every neighborhood it enriches."""

    def __init__(self, on_first_call) -> None:
        self._inner = make_report_service()
        self._on_first_call = on_first_call
        self._lock = threading.Lock()
        self._fired = False
        self.enriched: list[str] = []

    def build_for_location(self, location, radius_meters, ctx=None, *, use_cache=True):
        with self._lock:
            self.enriched.append(location.neighborhood_code)
            fire = not self._fired
            self._fired = True
        if fire:
            self._on_first_call()
        return self._inner.build_for_location(location, radius_meters, ctx, use_cache=use_cache)


@pytest.fixture()
def service(session_factory, clock) -> BatchJobService:
    return BatchJobService(session_factory=session_factory, clock=clock)


def _run(session_factory, clock, processor, job_type=BatchJobType.CITY_INGESTION) -> None:
    BatchJobExecutor(
        processors={job_type: processor},
        session_factory=session_factory,
        clock=clock,
    ).process_next_job()


def _city_processor(session_factory, geo_client, report_service=None) -> CityIngestionProcessor:
    return CityIngestionProcessor(
        geo_client=geo_client,
        report_service=report_service or make_report_service(),
        session_factory=session_factory,
        batch_size=10,
    )


def _neighborhoods(session_factory) -> dict[str, Neighborhood]:
    with session_scope(session_factory) as session:
        rows = session.scalars(select(Neighborhood)).all()
        session.expunge_all()
    return {row.code: row for row in rows}


class TestCityIngestion:
    def test_city_without_neighborhoods(self, service, session_factory, clock) -> None:
        job = service.enqueue("CityIngestion", "GhostTown")
        _run(session_factory, clock, _city_processor(session_factory, FakeGeoClient()))

        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.progress == 100
        assert stored.result_summary == "No neighborhoods found for city."

    def test_inserts_new_and_refreshes_existing(self, service, session_factory, clock) -> None:
        geometries = _geometries(15)
        stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
        with session_scope(session_factory) as session:
            for geo in geometries[:5]:
                session.add(
                    Neighborhood(
                        code=geo.code,
                        name=f"Old name {geo.code}",
                        city="Utrecht",
                        type="Buurt",
                        latitude=geo.latitude,
                        longitude=geo.longitude,
                        population_density=1.0,
                        average_woz_value=1.0,
                        crime_rate=1.0,
                        last_updated=stamp,
                    )
                )

        job = service.enqueue("CityIngestion", "Utrecht")
        geo_client = FakeGeoClient({"Utrecht": geometries})
        _run(session_factory, clock, _city_processor(session_factory, geo_client))

        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_summary == "Processed 15 neighborhoods."
        assert stored.result_payload == {"inserted": 10, "updated": 5, "failed": []}
        assert "Processed 10/15 neighborhoods." in stored.execution_log

        rows = _neighborhoods(session_factory)
        assert len(rows) == 15
        existing = rows[geometries[0].code]
        assert existing.name == f"Old name {geometries[0].code}"
        assert existing.population_density == 2500
        assert existing.average_woz_value == 450_000
        assert existing.crime_rate == 30

        fresh = rows[geometries[14].code]
        assert fresh.name == "Buurt 14"
        assert fresh.city == "Utrecht"
        assert fresh.type == "Buurt"
        assert fresh.latitude == pytest.approx(geometries[14].latitude)
        assert fresh.average_woz_value == 450_000

    def test_rerun_is_idempotent(self, service, session_factory, clock) -> None:
        geo_client = FakeGeoClient({"Utrecht": _geometries(12)})
        processor = _city_processor(session_factory, geo_client)

        service.enqueue("CityIngestion", "Utrecht")
        _run(session_factory, clock, processor)
        second = service.enqueue("CityIngestion", "Utrecht")
        _run(session_factory, clock, processor)

        with session_scope(session_factory) as session:
            count = session.scalar(select(func.count()).select_from(Neighborhood))
        assert count == 12
        assert service.get_job(second.id).result_payload == {"inserted": 0, "updated": 12, "failed": []}

    def test_failing_neighborhood_is_skipped(self, service, session_factory, clock) -> None:
        geometries = _geometries(4)
        bad_code = geometries[2].code
        processor = _city_processor(
            session_factory,
            FakeGeoClient({"Utrecht": geometries}),
            report_service=FlakyReportService({bad_code}),
        )

        job = service.enqueue("CityIngestion", "Utrecht")
        _run(session_factory, clock, processor)

        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_summary == "Processed 4 neighborhoods."
        assert stored.result_payload["inserted"] == 3
        assert stored.result_payload["failed"] == [
            {"code": bad_code, "error": f"enrichment exploded for {bad_code}"}
        ]
        assert bad_code not in _neighborhoods(session_factory)
        assert f"Skipped neighborhood {bad_code}" in stored.execution_log

    def test_geo_outage_fails_job(self, service, session_factory, clock) -> None:
        geo_client = FakeGeoClient(error=SourceUnavailableError("PDOK", "HTTP 503"))
        job = service.enqueue("CityIngestion", "Utrecht")
        _run(session_factory, clock, _city_processor(session_factory, geo_client))

        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.FAILED
        assert stored.error == INTERNAL_ERROR_MESSAGE
        assert "Failed to fetch neighborhoods for city 'Utrecht'" in stored.execution_log

    def test_location_without_centroid_defaults_to_origin(self) -> None:
        geo = NeighborhoodGeometry(code="BU1", name="Nergens", type="Buurt", latitude=None, longitude=None)
        location = neighborhood_location(geo, "Utrecht")
        assert (location.latitude, location.longitude) == (0.0, 0.0)
        assert location.neighborhood_code == "BU1"


class TestBatchExecution:
    def test_batch_runs_concurrently_up_to_batch_size(self, service, session_factory, clock) -> None:
        report_service = ConcurrencyRecordingReportService(parties=3)
        processor = CityIngestionProcessor(
            geo_client=FakeGeoClient({"Utrecht": _geometries(6)}),
            report_service=report_service,
            session_factory=session_factory,
            batch_size=3,
        )

        job = service.enqueue("CityIngestion", "Utrecht")
        _run(session_factory, clock, processor)

        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_payload == {"inserted": 6, "updated": 0, "failed": []}
        assert 1 < report_service.peak <= 3

    def test_user_cancel_stops_before_next_batch(self, service, session_factory, clock) -> None:
        geometries = _geometries(5)
        job = service.enqueue("CityIngestion", "Utrecht")
        report_service = CancellingReportService(lambda: service.cancel(job.id))
        processor = CityIngestionProcessor(
            geo_client=FakeGeoClient({"Utrecht": geometries}),
            report_service=report_service,
            session_factory=session_factory,
            batch_size=2,
        )

        _run(session_factory, clock, processor)

        first_batch = {geo.code for geo in geometries[:2]}
        stored = service.get_job(job.id)
        assert stored.status is BatchJobStatus.FAILED
        assert stored.error == "Job cancelled by user."
        assert set(report_service.enriched) == first_batch
        assert set(_neighborhoods(session_factory)) == first_batch


class TestAllCitiesIngestion:
    def test_enqueues_one_job_per_municipality(self, service, session_factory, clock) -> None:
        cities = [f"Gemeente {index}" for index in range(23)]
        processor = AllCitiesIngestionProcessor(
            geo_client=FakeGeoClient(municipalities=cities),
            session_factory=session_factory,
        )

        parent = service.enqueue("AllCitiesIngestion", "all")
        _run(session_factory, clock, processor, BatchJobType.ALL_CITIES_INGESTION)

        stored = service.get_job(parent.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_summary == "Queued ingestion for 23 municipalities."

        queued = service.list_jobs(status="Pending", job_type="CityIngestion", page_size=100)
        assert queued.total_count == 23
        assert {item.target for item in queued.items} == set(cities)

    def test_no_municipalities(self, service, session_factory, clock) -> None:
        processor = AllCitiesIngestionProcessor(geo_client=FakeGeoClient(), session_factory=session_factory)
        parent = service.enqueue("AllCitiesIngestion", "all")
        _run(session_factory, clock, processor, BatchJobType.ALL_CITIES_INGESTION)

        stored = service.get_job(parent.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_summary == "No municipalities found."

    def test_invalid_municipality_names_are_skipped(self, service, session_factory, clock) -> None:
        cities = ["Utrecht", "X", "  ", "G" * 256, "Ede"]
        processor = AllCitiesIngestionProcessor(
            geo_client=FakeGeoClient(municipalities=cities),
            session_factory=session_factory,
        )

        parent = service.enqueue("AllCitiesIngestion", "all")
        _run(session_factory, clock, processor, BatchJobType.ALL_CITIES_INGESTION)

        stored = service.get_job(parent.id)
        assert stored.status is BatchJobStatus.COMPLETED
        assert stored.result_summary == "Queued ingestion for 2 municipalities."
        assert stored.result_payload == {"queued": 2, "skipped": ["X", "  ", "G" * 256]}
        assert "Skipped 3 municipalities with an invalid name." in stored.execution_log

        queued = service.list_jobs(job_type="CityIngestion", page_size=100)
        assert {item.target for item in queued.items} == {"Utrecht", "Ede"}
