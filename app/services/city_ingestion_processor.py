"""
app/services/city_ingestion_processor.py

Enriches every neighborhood of one municipality and upserts its stats.

Neighborhoods are processed in fixed-size batches. Within a batch each
neighborhood runs the context pipeline on its own worker thread; a
neighborhood that raises is recorded and skipped, never failing its batch.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from app.config import (
    get_batch_job_settings,
    get_context_enrichment_settings,
    get_external_http_settings,
)
from app.connectors import GeoClient, PdokGeoClient
from app.domain.batch_job import ProcessingJob
from app.domain.cancellation import CancellationToken
from app.domain.context_report import CATEGORY_SAFETY, CATEGORY_SOCIAL, ContextReport, ResolvedLocation
from app.domain.errors import OperationCancelledError, ProcessorFailure, SourceUnavailableError
from app.domain.neighborhood import NeighborhoodGeometry, NeighborhoodUpsert
from app.repositories.neighborhood_repository import NeighborhoodRepository
from app.services.batch_job_executor import JobOutcome, JobProgressTracker
from app.services.context_report_service import ContextReportService, get_context_report_service
from db.session import session_scope

logger = logging.getLogger(__name__)

NO_NEIGHBORHOODS_SUMMARY = "No neighborhoods found for city."
WOZ_KEUR_TO_EUR = 1000


def neighborhood_location(geo: NeighborhoodGeometry, city: str) -> ResolvedLocation:
    return ResolvedLocation(
        query=geo.code,
        display_address=f"{geo.name}, {city}",
        latitude=geo.latitude if geo.latitude is not None else 0.0,
        longitude=geo.longitude if geo.longitude is not None else 0.0,
        municipality_name=city,
        neighborhood_code=geo.code,
        neighborhood_name=geo.name,
    )


def _metric_value(report: ContextReport, category: str, key: str) -> float | None:
    metric = report.find_metric(category, key)
    return metric.value if metric is not None else None


def to_upsert(geo: NeighborhoodGeometry, city: str, report: ContextReport) -> NeighborhoodUpsert:
    woz_keur = _metric_value(report, CATEGORY_SOCIAL, "average_woz")
    return NeighborhoodUpsert(
        code=geo.code,
        name=geo.name,
        city=city,
        type=geo.type,
        latitude=geo.latitude,
        longitude=geo.longitude,
        population_density=_metric_value(report, CATEGORY_SOCIAL, "population_density"),
        average_woz_value=woz_keur * WOZ_KEUR_TO_EUR if woz_keur is not None else None,
        crime_rate=_metric_value(report, CATEGORY_SAFETY, "total_crimes"),
    )


class CityIngestionProcessor:
    def __init__(
        self,
        *,
        geo_client: GeoClient,
        report_service: ContextReportService,
        session_factory: sessionmaker[Session] | None = None,
        batch_size: int = 10,
        radius_meters: int = 1000,
    ) -> None:
        self._geo_client = geo_client
        self._report_service = report_service
        self._session_factory = session_factory
        self._batch_size = max(1, batch_size)
        self._radius_meters = radius_meters

    def process(
        self,
        job: ProcessingJob,
        tracker: JobProgressTracker,
        ctx: CancellationToken,
    ) -> JobOutcome:
        city = job.target.strip()
        tracker.log(f"Processing city ingestion for {city}")

        try:
            neighborhoods = self._geo_client.list_neighborhoods(city, ctx)
        except SourceUnavailableError as exc:
            raise ProcessorFailure(f"Failed to fetch neighborhoods for city '{city}': {exc}") from exc

        if not neighborhoods:
            tracker.log(NO_NEIGHBORHOODS_SUMMARY)
            return JobOutcome(summary=NO_NEIGHBORHOODS_SUMMARY)

        total = len(neighborhoods)
        tracker.log(f"Found {total} neighborhoods.")
        processed = inserted = updated = 0
        failures: list[dict[str, str]] = []

        for start in range(0, total, self._batch_size):
            ctx.raise_if_cancelled()
            tracker.ensure_active()

            batch = neighborhoods[start:start + self._batch_size]
            rows, batch_failures = self._enrich_batch(city, batch, ctx)
            with session_scope(self._session_factory) as session:
                summary = NeighborhoodRepository(session).upsert_many(rows)

            processed += len(batch)
            inserted += summary.inserted
            updated += summary.updated
            failures.extend(batch_failures)
            for failure in batch_failures:
                tracker.log(f"Skipped neighborhood {failure['code']}: {failure['error']}")
            tracker.progress(int(processed / total * 100), f"Processed {processed}/{total} neighborhoods.")

        summary_text = f"Processed {total} neighborhoods."
        tracker.log(summary_text)
        payload: dict[str, Any] = {"inserted": inserted, "updated": updated, "failed": failures}
        logger.info(
            "City ingestion finished city=%s total=%s inserted=%s updated=%s failed=%s",
            city,
            total,
            inserted,
            updated,
            len(failures),
        )
        return JobOutcome(summary=summary_text, result_payload=payload)

    def _enrich_batch(
        self,
        city: str,
        batch: list[NeighborhoodGeometry],
        ctx: CancellationToken,
    ) -> tuple[list[NeighborhoodUpsert], list[dict[str, str]]]:
        rows: list[NeighborhoodUpsert] = []
        failures: list[dict[str, str]] = []

        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="city-ingestion") as pool:
            futures = {pool.submit(self._enrich_one, city, geo, ctx): geo for geo in batch}
            for future, geo in futures.items():
                try:
                    rows.append(future.result())
                except OperationCancelledError:
                    if ctx.cancelled or ctx.expired:
                        raise
                    failures.append({"code": geo.code, "error": "Enrichment was cancelled."})
                except Exception as exc:
                    logger.warning("Neighborhood enrichment failed code=%s error=%s", geo.code, exc)
                    failures.append({"code": geo.code, "error": str(exc) or type(exc).__name__})
        return rows, failures

    def _enrich_one(self, city: str, geo: NeighborhoodGeometry, ctx: CancellationToken) -> NeighborhoodUpsert:
        has_centroid = geo.latitude is not None and geo.longitude is not None
        report = self._report_service.build_for_location(
            neighborhood_location(geo, city),
            self._radius_meters,
            ctx,
            use_cache=has_centroid,
        )
        return to_upsert(geo, city, report)


@lru_cache(maxsize=1)
def get_city_ingestion_processor() -> CityIngestionProcessor:
    settings = get_context_enrichment_settings()
    return CityIngestionProcessor(
        geo_client=PdokGeoClient(settings=settings, http_settings=get_external_http_settings()),
        report_service=get_context_report_service(),
        batch_size=get_batch_job_settings().ingestion_batch_size,
        radius_meters=settings.default_radius_meters,
    )
