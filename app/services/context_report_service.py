"""
app/services/context_report_service.py

On-demand context report orchestration:
resolve -> cache lookup -> source fan-out -> metric builders -> composite score.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from functools import lru_cache

from app.config import (
    ContextEnrichmentSettings,
    get_context_enrichment_settings,
    get_external_http_settings,
    get_scoring_settings,
)
from app.connectors import (
    CbsCrimeStatsClient,
    CbsDemographicsClient,
    CbsNeighborhoodStatsClient,
    LocationResolver,
    LuchtmeetnetAirQualityClient,
    OverpassAmenityClient,
    PdokLocationResolver,
)
from app.domain.cancellation import CancellationToken
from app.domain.context_report import ContextMetric, ContextReport, ResolvedLocation, SourceAttribution
from app.domain.errors import SourceUnavailableError, ValidationFailure
from app.enrichment.aggregator import SourceAggregator
from app.enrichment.registry import DEFAULT_REGISTRATIONS, CategoryRegistration, run_builders
from app.enrichment.report_cache import ReportCache
from app.enrichment.scoring import compose

logger = logging.getLogger(__name__)

INPUT_REQUIRED_MESSAGE = "Input is required."
UNRESOLVED_MESSAGE = "Could not resolve input to an address."


class ContextReportService:
    """
    Builds context reports for free-text addresses or resolved locations.

    Partial source failure never fails a report: the composite score is
    computed from whichever categories were scored and every gap is listed
    in ``warnings``. Reports with an unavailable source are not cached.
    """

    def __init__(
        self,
        *,
        resolver: LocationResolver,
        aggregator: SourceAggregator,
        cache: ReportCache,
        weights: Mapping[str, float],
        settings: ContextEnrichmentSettings,
        registrations: Sequence[CategoryRegistration] = DEFAULT_REGISTRATIONS,
    ) -> None:
        self._resolver = resolver
        self._aggregator = aggregator
        self._cache = cache
        self._weights = dict(weights)
        self._settings = settings
        self._registrations = tuple(registrations)

    def clamp_radius(self, radius_meters: int | None) -> tuple[int, str | None]:
        requested = self._settings.default_radius_meters if radius_meters is None else int(radius_meters)
        clamped = max(self._settings.min_radius_meters, min(self._settings.max_radius_meters, requested))
        if clamped == requested:
            return clamped, None
        return clamped, f"Radius clamped from {requested}m to {clamped}m to respect system limits."

    def build(
        self,
        input_text: str,
        radius_meters: int | None = None,
        ctx: CancellationToken | None = None,
    ) -> ContextReport:
        """
        Resolve ``input_text`` and return its context report.

        Raises ``ValidationFailure`` for empty or unresolvable input.
        """

        if input_text is None or not input_text.strip():
            raise ValidationFailure(INPUT_REQUIRED_MESSAGE)
        ctx = ctx or CancellationToken.none()
        radius, radius_warning = self.clamp_radius(radius_meters)

        try:
            location = self._resolver.resolve(input_text, ctx)
        except SourceUnavailableError as exc:
            logger.warning("Location resolver failed error=%s", exc)
            location = None
        if location is None:
            raise ValidationFailure(UNRESOLVED_MESSAGE)

        report = self.build_for_location(location, radius, ctx)
        report.location = replace(report.location, query=input_text)
        if radius_warning:
            report.warnings.append(radius_warning)
        return report

    def build_for_location(
        self,
        location: ResolvedLocation,
        radius_meters: int,
        ctx: CancellationToken | None = None,
        *,
        use_cache: bool = True,
    ) -> ContextReport:
        """
        Build (or fetch from cache) the report for an already resolved location.

        ``use_cache=False`` is for locations without trustworthy coordinates,
        which must not share a cache slot with one another.
        """

        ctx = ctx or CancellationToken.none()
        radius, _ = self.clamp_radius(radius_meters)

        if use_cache:
            cached = self._cache.get(location.latitude, location.longitude, radius)
            if cached is not None:
                logger.debug(
                    "Context report cache hit lat=%.5f lon=%.5f radius=%s",
                    location.latitude,
                    location.longitude,
                    radius,
                )
                return cached

        report, complete = self._assemble(location, radius, ctx)
        if complete and use_cache:
            self._cache.set(report, radius)
        logger.info(
            "Context report built address=%s categories=%s composite=%s warnings=%s cached=%s",
            location.display_address,
            sorted(report.category_scores),
            report.composite_score,
            len(report.warnings),
            complete,
        )
        return report

    def _assemble(
        self,
        location: ResolvedLocation,
        radius_meters: int,
        ctx: CancellationToken,
    ) -> tuple[ContextReport, bool]:
        aggregate = self._aggregator.aggregate(location, radius_meters, ctx)
        warnings = list(aggregate.warnings)

        metrics: dict[str, list[ContextMetric]] = {}
        category_scores: dict[str, float] = {}
        for result in run_builders(aggregate.per_source, self._registrations):
            metrics[result.category] = list(result.metrics)
            if result.score is not None:
                category_scores[result.category] = result.score
            if result.warning:
                warnings.append(result.warning)

        report = ContextReport(
            location=location,
            metrics=metrics,
            composite_score=compose(category_scores, self._weights),
            category_scores=category_scores,
            sources=self._attributions(aggregate.per_source, aggregate.retrieved_at),
            warnings=warnings,
        )
        return report, not aggregate.warnings

    def _attributions(self, per_source: dict[str, object], retrieved_at: dict[str, datetime]) -> list[SourceAttribution]:
        now = datetime.now(timezone.utc)
        sources = [
            SourceAttribution(
                source=self._resolver.name,
                url=self._resolver.url,
                license=self._resolver.license,
                retrieved_at=now,
            )
        ]
        for client in self._aggregator.sources:
            if per_source.get(client.name) is None:
                continue
            sources.append(
                SourceAttribution(
                    source=client.name,
                    url=client.url,
                    license=client.license,
                    retrieved_at=retrieved_at.get(client.name, now),
                )
            )
        return sources


@lru_cache(maxsize=1)
def get_context_report_service() -> ContextReportService:
    """
    Build and cache the context report service with live source clients.
    """

    settings = get_context_enrichment_settings()
    http_settings = get_external_http_settings()
    sources = [
        CbsNeighborhoodStatsClient(settings=settings, http_settings=http_settings),
        CbsCrimeStatsClient(settings=settings, http_settings=http_settings),
        CbsDemographicsClient(settings=settings, http_settings=http_settings),
        OverpassAmenityClient(settings=settings, http_settings=http_settings),
        LuchtmeetnetAirQualityClient(settings=settings, http_settings=http_settings),
    ]
    return ContextReportService(
        resolver=PdokLocationResolver(settings=settings, http_settings=http_settings),
        aggregator=SourceAggregator(sources, timeout_seconds=settings.source_timeout_seconds),
        cache=ReportCache(settings.report_cache_minutes * 60),
        weights=get_scoring_settings().weights,
        settings=settings,
    )
