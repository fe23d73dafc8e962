"""
app/enrichment/builders.py

Metric builders: one pure function per category turning a source payload
into labeled metrics and a 0-100 headline score.

A builder receives None when its source failed or had no data for the
location and answers with an empty metric list and a warning.
"""

from __future__ import annotations

from app.domain.context_report import (
    CATEGORY_AMENITIES,
    CATEGORY_DEMOGRAPHICS,
    CATEGORY_ENVIRONMENT,
    CATEGORY_HOUSING,
    CATEGORY_SAFETY,
    CATEGORY_SOCIAL,
    AirQualitySnapshot,
    AmenityStats,
    CategoryBuildResult,
    ContextMetric,
    CrimeStats,
    Demographics,
    NeighborhoodStats,
)
from app.enrichment.scoring import band_score, category_score, clamp

SOURCE_CBS = "CBS StatLine"
SOURCE_OSM = "OpenStreetMap"
SOURCE_LUCHTMEETNET = "Luchtmeetnet Open API"
SOURCE_COMPOSITE = "Composite"

SOCIAL_UNAVAILABLE = "Social indicators were unavailable; social score is partial."
SAFETY_UNAVAILABLE = "Crime statistics were unavailable; safety score is partial."
DEMOGRAPHICS_UNAVAILABLE = "CBS demographics were unavailable; demographics score is partial."
AMENITIES_UNAVAILABLE = "OSM amenities were unavailable; amenity score is partial."
ENVIRONMENT_UNAVAILABLE = "Air quality source was unavailable; environment score is partial."

DENSITY_BANDS = ((500, 65.0), (1500, 85.0), (3500, 100.0), (7000, 70.0))
TOTAL_CRIME_BANDS = ((20, 100.0), (35, 85.0), (50, 70.0), (75, 50.0), (100, 30.0))
BURGLARY_BANDS = ((2, 100.0), (5, 80.0), (10, 60.0), (15, 40.0))
VIOLENT_CRIME_BANDS = ((2, 100.0), (5, 75.0), (10, 50.0))
PRIVATE_RENTAL_BANDS = ((10, 70.0), (20, 85.0), (35, 100.0), (50, 80.0))
PROXIMITY_BANDS = ((250, 100.0), (500, 85.0), (1000, 70.0), (1500, 55.0), (2000, 40.0))
PM25_BANDS = ((5, 100.0), (10, 85.0), (15, 70.0), (25, 50.0), (35, 25.0))
PM10_BANDS = ((15, 100.0), (25, 85.0), (35, 70.0), (45, 50.0), (60, 30.0))
NO2_BANDS = ((20, 100.0), (30, 85.0), (40, 70.0), (60, 50.0), (80, 30.0))
O3_BANDS = ((60, 100.0), (90, 85.0), (120, 70.0), (150, 50.0), (180, 30.0))


def _metric(
    key: str,
    label: str,
    value: float | None,
    unit: str | None,
    score: float | None,
    source: str,
    note: str | None = None,
) -> ContextMetric:
    return ContextMetric(key=key, label=label, value=value, unit=unit, score=score, source=source, note=note)


def _result(category: str, metrics: list[ContextMetric]) -> CategoryBuildResult:
    score = category_score(metrics)
    warning = None if score is not None else f"No {category} metrics could be scored; {category} score is partial."
    return CategoryBuildResult(category=category, metrics=metrics, score=score, warning=warning)


def _missing(category: str, warning: str | None) -> CategoryBuildResult:
    return CategoryBuildResult(category=category, metrics=[], score=None, warning=warning)


def build_social(stats: NeighborhoodStats | None) -> CategoryBuildResult:
    if stats is None:
        return _missing(CATEGORY_SOCIAL, SOCIAL_UNAVAILABLE)

    low_income = stats.low_income_households_percent
    woz = stats.average_woz_value_keur
    metrics = [
        _metric("residents", "Residents", stats.residents, "people", None, SOURCE_CBS),
        _metric(
            "population_density",
            "Population Density",
            stats.population_density,
            "people/km²",
            band_score(stats.population_density, DENSITY_BANDS, 50.0),
            SOURCE_CBS,
        ),
        _metric(
            "low_income_households",
            "Low Income Households",
            low_income,
            "%",
            clamp(100 - low_income * 8) if low_income is not None else None,
            SOURCE_CBS,
        ),
        _metric(
            "average_woz",
            "Average WOZ Value",
            woz,
            "k€",
            clamp((woz - 150) / 3) if woz is not None else None,
            SOURCE_CBS,
        ),
    ]
    return _result(CATEGORY_SOCIAL, metrics)


def build_safety(crime: CrimeStats | None) -> CategoryBuildResult:
    if crime is None:
        return _missing(CATEGORY_SAFETY, SAFETY_UNAVAILABLE)

    metrics = [
        _metric(
            "total_crimes",
            "Total Crimes",
            crime.total_crimes_per_1000,
            "per 1000",
            band_score(crime.total_crimes_per_1000, TOTAL_CRIME_BANDS, 15.0),
            SOURCE_CBS,
        ),
        _metric(
            "burglary",
            "Burglary Rate",
            crime.burglary_per_1000,
            "per 1000",
            band_score(crime.burglary_per_1000, BURGLARY_BANDS, 20.0),
            SOURCE_CBS,
        ),
        _metric(
            "violent_crime",
            "Violent Crime",
            crime.violent_crime_per_1000,
            "per 1000",
            band_score(crime.violent_crime_per_1000, VIOLENT_CRIME_BANDS, 25.0),
            SOURCE_CBS,
        ),
        _metric("theft", "Theft Rate", crime.theft_per_1000, "per 1000", None, SOURCE_CBS),
        _metric("vandalism", "Vandalism Rate", crime.vandalism_per_1000, "per 1000", None, SOURCE_CBS),
    ]
    return _result(CATEGORY_SAFETY, metrics)


def family_friendly_score(demographics: Demographics) -> float:
    """
    Start from a neutral 50 and shift by family share, child share and
    household size relative to typical Dutch values.
    """

    score = 50.0
    if demographics.percent_family_households is not None:
        score += (demographics.percent_family_households - 20) * 1.5
    if demographics.percent_age_0_to_14 is not None:
        score += (demographics.percent_age_0_to_14 - 15) * 2
    if demographics.average_household_size is not None:
        score += (demographics.average_household_size - 2) * 15
    return clamp(score)


def build_demographics(demographics: Demographics | None) -> CategoryBuildResult:
    if demographics is None:
        return _missing(CATEGORY_DEMOGRAPHICS, DEMOGRAPHICS_UNAVAILABLE)

    family_score = family_friendly_score(demographics)
    metrics = [
        _metric("age_0_14", "Age 0-14", demographics.percent_age_0_to_14, "%", None, SOURCE_CBS),
        _metric("age_15_24", "Age 15-24", demographics.percent_age_15_to_24, "%", None, SOURCE_CBS),
        _metric("age_25_44", "Age 25-44", demographics.percent_age_25_to_44, "%", None, SOURCE_CBS),
        _metric("age_45_64", "Age 45-64", demographics.percent_age_45_to_64, "%", None, SOURCE_CBS),
        _metric("age_65_plus", "Age 65+", demographics.percent_age_65_plus, "%", None, SOURCE_CBS),
        _metric("avg_household_size", "Avg Household Size", demographics.average_household_size, "people", None, SOURCE_CBS),
        _metric("owner_occupied", "Owner-Occupied", demographics.percent_owner_occupied, "%", None, SOURCE_CBS),
        _metric("single_households", "Single Households", demographics.percent_single_households, "%", None, SOURCE_CBS),
        _metric("family_friendly", "Family-Friendly Score", family_score, "score", family_score, SOURCE_COMPOSITE),
    ]
    return _result(CATEGORY_DEMOGRAPHICS, metrics)


def build_mix_score(pre2000: int | None, post2000: int | None) -> float | None:
    if pre2000 is None and post2000 is None:
        return None
    if pre2000 is None or post2000 is None:
        return 70.0
    return clamp(100 - abs(pre2000 - post2000) * 1.2, 40.0, 100.0)


def build_housing(stats: NeighborhoodStats | None) -> CategoryBuildResult:
    # Shares the CBS payload with social, which already reports the gap.
    if stats is None:
        return _missing(CATEGORY_HOUSING, None)

    owner = stats.percentage_owner_occupied
    metrics = [
        _metric("housing_owner", "Owner-Occupied", owner, "%", clamp(owner * 1.25) if owner is not None else None, SOURCE_CBS),
        _metric("housing_rental", "Rental Properties", stats.percentage_rental, "%", None, SOURCE_CBS),
        _metric("housing_social", "Social Housing", stats.percentage_social_housing, "%", None, SOURCE_CBS),
        _metric(
            "housing_private_rental",
            "Private Rental",
            stats.percentage_private_rental,
            "%",
            band_score(stats.percentage_private_rental, PRIVATE_RENTAL_BANDS, 60.0),
            SOURCE_CBS,
        ),
        _metric("housing_pre2000", "Built Pre-2000", stats.percentage_pre2000, "%", None, SOURCE_CBS),
        _metric("housing_post2000", "Built Post-2000", stats.percentage_post2000, "%", None, SOURCE_CBS),
        _metric(
            "housing_build_mix",
            "Build-Year Mix",
            stats.percentage_post2000,
            "%",
            build_mix_score(stats.percentage_pre2000, stats.percentage_post2000),
            SOURCE_COMPOSITE,
        ),
        _metric("housing_multifamily", "Multi-Family Homes", stats.percentage_multi_family, "%", None, SOURCE_CBS),
    ]
    result = _result(CATEGORY_HOUSING, metrics)
    if result.score is None:
        return CategoryBuildResult(category=CATEGORY_HOUSING, metrics=metrics, score=None, warning=None)
    return result


def build_amenities(amenities: AmenityStats | None) -> CategoryBuildResult:
    if amenities is None:
        return _missing(CATEGORY_AMENITIES, AMENITIES_UNAVAILABLE)

    total = (
        amenities.school_count
        + amenities.supermarket_count
        + amenities.park_count
        + amenities.healthcare_count
        + amenities.transit_stop_count
        + amenities.charging_station_count
    )
    volume_score = clamp(total * 5)
    metrics = [
        _metric("schools", "Schools in Radius", amenities.school_count, "count", None, SOURCE_OSM),
        _metric("supermarkets", "Supermarkets in Radius", amenities.supermarket_count, "count", None, SOURCE_OSM),
        _metric("parks", "Parks in Radius", amenities.park_count, "count", None, SOURCE_OSM),
        _metric("healthcare", "Healthcare in Radius", amenities.healthcare_count, "count", None, SOURCE_OSM),
        _metric("transit_stops", "Transit Stops in Radius", amenities.transit_stop_count, "count", None, SOURCE_OSM),
        _metric("charging_stations", "Charging Stations in Radius", amenities.charging_station_count, "count", None, SOURCE_OSM),
        _metric("amenity_diversity", "Amenity Diversity", amenities.diversity_score, "score", amenities.diversity_score, SOURCE_OSM),
        _metric(
            "amenity_proximity",
            "Nearest Amenity Distance",
            amenities.nearest_amenity_distance_meters,
            "m",
            band_score(amenities.nearest_amenity_distance_meters, PROXIMITY_BANDS, 25.0),
            SOURCE_OSM,
        ),
        _metric("amenity_count_score", "Amenity Volume Score", volume_score, "score", volume_score, SOURCE_OSM),
    ]
    return _result(CATEGORY_AMENITIES, metrics)


def build_environment(air: AirQualitySnapshot | None) -> CategoryBuildResult:
    if air is None:
        return _missing(CATEGORY_ENVIRONMENT, ENVIRONMENT_UNAVAILABLE)

    metrics = [
        _metric("pm25", "PM2.5", air.pm25, "µg/m³", band_score(air.pm25, PM25_BANDS, 10.0), SOURCE_LUCHTMEETNET),
        _metric("pm10", "PM10", air.pm10, "µg/m³", band_score(air.pm10, PM10_BANDS, 15.0), SOURCE_LUCHTMEETNET),
        _metric("no2", "NO2", air.no2, "µg/m³", band_score(air.no2, NO2_BANDS, 15.0), SOURCE_LUCHTMEETNET),
        _metric("o3", "O3", air.o3, "µg/m³", band_score(air.o3, O3_BANDS, 15.0), SOURCE_LUCHTMEETNET),
        _metric("air_station", "Nearest Station", None, None, None, SOURCE_LUCHTMEETNET, air.station_name),
        _metric("air_station_distance", "Distance to Station", air.station_distance_meters, "m", None, SOURCE_LUCHTMEETNET),
    ]
    return _result(CATEGORY_ENVIRONMENT, metrics)
