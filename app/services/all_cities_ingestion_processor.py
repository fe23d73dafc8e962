"""
app/services/all_cities_ingestion_processor.py

Fans one AllCitiesIngestion job out into a CityIngestion job per municipality.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from app.config import get_context_enrichment_settings, get_external_http_settings
from app.connectors import GeoClient, PdokGeoClient
from app.domain import batch_job as jobs
from app.domain.batch_job import BatchJobType, ProcessingJob
from app.domain.cancellation import CancellationToken
from app.domain.errors import ProcessorFailure, SourceUnavailableError, ValidationFailure
from app.mappers.batch_job_mapper import to_record
from app.services.batch_job_executor import JobOutcome, JobProgressTracker
from app.services.batch_job_service import validate_target
from db.repositories.batch_job_repository import BatchJobRepository
from db.session import session_scope

logger = logging.getLogger(__name__)

NO_MUNICIPALITIES_SUMMARY = "No municipalities found."
STATUS_CHECK_INTERVAL = 10


class AllCitiesIngestionProcessor:
    def __init__(
        self,
        *,
        geo_client: GeoClient,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self._geo_client = geo_client
        self._session_factory = session_factory

    def process(
        self,
        job: ProcessingJob,
        tracker: JobProgressTracker,
        ctx: CancellationToken,
    ) -> JobOutcome:
        tracker.log("Fetching all municipalities from CBS...")
        try:
            cities = self._geo_client.list_municipalities(ctx)
        except SourceUnavailableError as exc:
            raise ProcessorFailure(f"Failed to list municipalities: {exc}") from exc

        if not cities:
            tracker.log(NO_MUNICIPALITIES_SUMMARY)
            return JobOutcome(summary=NO_MUNICIPALITIES_SUMMARY)

        tracker.log(f"Found {len(cities)} municipalities. Queueing jobs...")
        queued = 0
        skipped: list[str] = []
        for index, city in enumerate(cities):
            ctx.raise_if_cancelled()
            if index % STATUS_CHECK_INTERVAL == 0:
                tracker.ensure_active()
                tracker.progress(int(index / len(cities) * 100))
            try:
                target = validate_target(city)
            except ValidationFailure as exc:
                logger.warning("Skipping municipality name=%r parent_job_id=%s reason=%s", city, job.id, exc)
                skipped.append(city)
                continue
            with session_scope(self._session_factory) as session:
                BatchJobRepository(session).add(to_record(jobs.new_job(BatchJobType.CITY_INGESTION, target)))
            queued += 1

        if skipped:
            tracker.log(f"Skipped {len(skipped)} municipalities with an invalid name.")
        tracker.log(f"Successfully queued {queued} jobs.")
        logger.info("Queued city ingestion jobs count=%s skipped=%s parent_job_id=%s", queued, len(skipped), job.id)
        return JobOutcome(
            summary=f"Queued ingestion for {queued} municipalities.",
            result_payload={"queued": queued, "skipped": skipped} if skipped else None,
        )


@lru_cache(maxsize=1)
def get_all_cities_ingestion_processor() -> AllCitiesIngestionProcessor:
    return AllCitiesIngestionProcessor(
        geo_client=PdokGeoClient(
            settings=get_context_enrichment_settings(),
            http_settings=get_external_http_settings(),
        ),
    )
