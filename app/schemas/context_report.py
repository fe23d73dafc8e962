"""
app/schemas/context_report.py

Request and response schemas for the context report endpoint.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.domain.context_report import ContextMetric, ContextReport


class ContextReportRequest(BaseModel):
    input: str = Field(..., description="Address, postal code or listing URL")
    radius_meters: int | None = Field(default=None, description="Search radius; clamped to system limits")


class ResolvedLocationResponse(BaseModel):
    query: str
    display_address: str
    latitude: float
    longitude: float
    rd_x: float | None = None
    rd_y: float | None = None
    municipality_code: str | None = None
    municipality_name: str | None = None
    district_code: str | None = None
    district_name: str | None = None
    neighborhood_code: str | None = None
    neighborhood_name: str | None = None
    postal_code: str | None = None


class ContextMetricResponse(BaseModel):
    key: str
    label: str
    value: float | None = None
    unit: str | None = None
    score: float | None = None
    source: str
    note: str | None = None

    @classmethod
    def from_domain(cls, metric: ContextMetric) -> ContextMetricResponse:
        return cls(
            key=metric.key,
            label=metric.label,
            value=metric.value,
            unit=metric.unit,
            score=metric.score,
            source=metric.source,
            note=metric.note,
        )


class SourceAttributionResponse(BaseModel):
    source: str
    url: str
    license: str
    retrieved_at: datetime


class ContextReportResponse(BaseModel):
    location: ResolvedLocationResponse
    metrics: dict[str, list[ContextMetricResponse]] = Field(default_factory=dict)
    composite_score: float | None = None
    category_scores: dict[str, float] = Field(default_factory=dict)
    sources: list[SourceAttributionResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, report: ContextReport) -> ContextReportResponse:
        location = report.location
        return cls(
            location=ResolvedLocationResponse(
                query=location.query,
                display_address=location.display_address,
                latitude=location.latitude,
                longitude=location.longitude,
                rd_x=location.rd_x,
                rd_y=location.rd_y,
                municipality_code=location.municipality_code,
                municipality_name=location.municipality_name,
                district_code=location.district_code,
                district_name=location.district_name,
                neighborhood_code=location.neighborhood_code,
                neighborhood_name=location.neighborhood_name,
                postal_code=location.postal_code,
            ),
            metrics={
                category: [ContextMetricResponse.from_domain(metric) for metric in metrics]
                for category, metrics in report.metrics.items()
            },
            composite_score=report.composite_score,
            category_scores=dict(report.category_scores),
            sources=[
                SourceAttributionResponse(
                    source=source.source,
                    url=source.url,
                    license=source.license,
                    retrieved_at=source.retrieved_at,
                )
                for source in report.sources
            ],
            warnings=list(report.warnings),
        )
