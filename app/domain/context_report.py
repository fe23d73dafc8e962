"""
app/domain/context_report.py

Domain models for location context reports and the raw source payloads
the metric builders consume.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

CATEGORY_SOCIAL = "social"
CATEGORY_SAFETY = "safety"
CATEGORY_DEMOGRAPHICS = "demographics"
CATEGORY_HOUSING = "housing"
CATEGORY_AMENITIES = "amenities"
CATEGORY_ENVIRONMENT = "environment"

KNOWN_CATEGORIES: tuple[str, ...] = (
    CATEGORY_SOCIAL,
    CATEGORY_SAFETY,
    CATEGORY_DEMOGRAPHICS,
    CATEGORY_HOUSING,
    CATEGORY_AMENITIES,
    CATEGORY_ENVIRONMENT,
)


@dataclass(frozen=True)
class ResolvedLocation:
    """
    Address resolved to coordinates and administrative region codes.
    """

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


@dataclass(frozen=True)
class ContextMetric:
    """
    One labeled metric with an optional normalized 0-100 score.
    """

    key: str
    label: str
    value: float | None
    unit: str | None
    score: float | None
    source: str
    note: str | None = None


@dataclass(frozen=True)
class SourceAttribution:
    source: str
    url: str
    license: str
    retrieved_at: datetime


@dataclass
class ContextReport:
    """
    Enrichment result for one location.

    ``category_scores`` only holds categories whose builder produced a score;
    ``composite_score`` is None when no category could be scored.
    """

    location: ResolvedLocation
    metrics: dict[str, list[ContextMetric]] = field(default_factory=dict)
    composite_score: float | None = None
    category_scores: dict[str, float] = field(default_factory=dict)
    sources: list[SourceAttribution] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def metrics_for(self, category: str) -> list[ContextMetric]:
        return self.metrics.get(category, [])

    def find_metric(self, category: str, key: str) -> ContextMetric | None:
        for metric in self.metrics_for(category):
            if metric.key == key:
                return metric
        return None

    @property
    def social_metrics(self) -> list[ContextMetric]:
        return self.metrics_for(CATEGORY_SOCIAL)

    @property
    def crime_metrics(self) -> list[ContextMetric]:
        return self.metrics_for(CATEGORY_SAFETY)

    @property
    def environment_metrics(self) -> list[ContextMetric]:
        return self.metrics_for(CATEGORY_ENVIRONMENT)


@dataclass(frozen=True)
class CategoryBuildResult:
    """
    Output of one metric builder.
    """

    category: str
    metrics: list[ContextMetric]
    score: float | None
    warning: str | None = None


@dataclass(frozen=True)
class AggregateResult:
    """
    Per-source payloads from one fan-out; failed sources map to None.
    """

    per_source: dict[str, Any]
    warnings: list[str]
    retrieved_at: dict[str, datetime] = field(default_factory=dict)

    @property
    def failed_sources(self) -> list[str]:
        return [name for name, payload in self.per_source.items() if payload is None]


# ---------------------------------------------------------------------------
# Source payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NeighborhoodStats:
    region_code: str
    region_type: str
    residents: int | None
    population_density: int | None
    average_woz_value_keur: float | None
    low_income_households_percent: float | None
    percentage_owner_occupied: int | None = None
    percentage_rental: int | None = None
    percentage_social_housing: int | None = None
    percentage_private_rental: int | None = None
    percentage_pre2000: int | None = None
    percentage_post2000: int | None = None
    percentage_multi_family: int | None = None


@dataclass(frozen=True)
class CrimeStats:
    total_crimes_per_1000: int | None
    burglary_per_1000: int | None
    violent_crime_per_1000: int | None
    theft_per_1000: int | None
    vandalism_per_1000: int | None


@dataclass(frozen=True)
class Demographics:
    percent_age_0_to_14: int | None
    percent_age_15_to_24: int | None
    percent_age_25_to_44: int | None
    percent_age_45_to_64: int | None
    percent_age_65_plus: int | None
    average_household_size: float | None
    percent_owner_occupied: int | None
    percent_single_households: int | None
    percent_family_households: int | None


@dataclass(frozen=True)
class AmenityStats:
    school_count: int
    supermarket_count: int
    park_count: int
    healthcare_count: int
    transit_stop_count: int
    nearest_amenity_distance_meters: float | None
    diversity_score: float
    charging_station_count: int = 0


@dataclass(frozen=True)
class AirQualitySnapshot:
    station_id: str
    station_name: str
    station_distance_meters: float
    pm25: float | None
    pm10: float | None = None
    no2: float | None = None
    o3: float | None = None
    measured_at: datetime | None = None
