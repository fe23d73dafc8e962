"""
app/connectors/overpass.py

OpenStreetMap amenity counts around a point via the Overpass API.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.base import HttpSourceClient
from app.connectors.geo import haversine_meters
from app.domain.cancellation import CancellationToken
from app.domain.context_report import AmenityStats, ResolvedLocation
from app.ttl_cache import MISSING, TTLCache

logger = logging.getLogger(__name__)

AMENITY_CATEGORIES = ("school", "supermarket", "park", "healthcare", "transit", "charging_station")
HEALTHCARE_AMENITIES = {"hospital", "clinic", "doctors", "pharmacy"}


def build_amenity_query(latitude: float, longitude: float, radius_meters: int) -> str:
    around = f"around:{radius_meters},{latitude!r},{longitude!r}"
    selectors = (
        "[amenity=school]",
        "[shop=supermarket]",
        "[leisure=park]",
        '[amenity~"hospital|clinic|doctors|pharmacy"]',
        "[highway=bus_stop]",
        "[railway=station]",
        "[amenity=charging_station]",
    )
    body = "".join(f"nwr({around}){selector};" for selector in selectors)
    return f"[out:json][timeout:25];({body});out center tags;"


def categorize(tags: dict[str, Any]) -> str | None:
    amenity = tags.get("amenity")
    if amenity == "school":
        return "school"
    if amenity in HEALTHCARE_AMENITIES:
        return "healthcare"
    if amenity == "charging_station":
        return "charging_station"
    if tags.get("shop") == "supermarket":
        return "supermarket"
    if tags.get("leisure") == "park":
        return "park"
    if tags.get("highway") == "bus_stop" or tags.get("railway") == "station":
        return "transit"
    return None


def element_coordinates(element: dict[str, Any]) -> tuple[float, float] | None:
    if element.get("lat") is not None and element.get("lon") is not None:
        return float(element["lat"]), float(element["lon"])
    center = element.get("center")
    if isinstance(center, dict) and center.get("lat") is not None and center.get("lon") is not None:
        return float(center["lat"]), float(center["lon"])
    return None


def summarize_elements(elements: list[dict[str, Any]], latitude: float, longitude: float) -> AmenityStats:
    counts = dict.fromkeys(AMENITY_CATEGORIES, 0)
    nearest: float | None = None
    for element in elements:
        coordinates = element_coordinates(element)
        if coordinates is None:
            continue
        distance = haversine_meters(latitude, longitude, coordinates[0], coordinates[1])
        if nearest is None or distance < nearest:
            nearest = distance
        category = categorize(element.get("tags") or {})
        if category is not None:
            counts[category] += 1

    populated = sum(1 for count in counts.values() if count > 0)
    return AmenityStats(
        school_count=counts["school"],
        supermarket_count=counts["supermarket"],
        park_count=counts["park"],
        healthcare_count=counts["healthcare"],
        transit_stop_count=counts["transit"],
        nearest_amenity_distance_meters=nearest,
        diversity_score=populated / len(AMENITY_CATEGORIES) * 100.0,
        charging_station_count=counts["charging_station"],
    )


class OverpassAmenityClient(HttpSourceClient):
    name = "Overpass"
    url = "https://overpass-api.de"
    license = "ODbL"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(http_settings=http_settings, session=session)
        self._base_url = settings.overpass_base_url.rstrip("/")
        self._cache = TTLCache(settings.report_cache_minutes * 60)

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> AmenityStats | None:
        ctx.raise_if_cancelled()
        cache_key = f"overpass:{location.latitude:.5f}:{location.longitude:.5f}:{radius_meters}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return cached

        payload = self._request_json(
            method="POST",
            url=f"{self._base_url}/api/interpreter",
            ctx=ctx,
            data={"data": build_amenity_query(location.latitude, location.longitude, radius_meters)},
            headers={"Accept": "application/json"},
        )
        elements = payload.get("elements") if isinstance(payload, dict) else None
        if not isinstance(elements, list):
            logger.warning("Overpass response was missing the elements array")
            return None

        stats = summarize_elements(elements, location.latitude, location.longitude)
        self._cache.set(cache_key, stats)
        return stats
