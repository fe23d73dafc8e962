"""
app/connectors/pdok_geo.py

Neighborhood and municipality listings from the PDOK wijken/buurten WFS.
"""

from __future__ import annotations

import logging
from typing import Any
from xml.sax.saxutils import escape

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.base import HttpSourceClient
from app.domain.cancellation import CancellationToken
from app.domain.neighborhood import NeighborhoodGeometry
from app.ttl_cache import MISSING, TTLCache

logger = logging.getLogger(__name__)

MUNICIPALITY_CACHE_SECONDS = 24 * 60 * 60
NEIGHBORHOOD_TYPE = "Buurt"


def municipality_filter(municipality_name: str) -> str:
    literal = escape(municipality_name, {'"': "&quot;", "'": "&apos;"})
    return (
        '<Filter><PropertyIsEqualTo matchCase="false">'
        "<PropertyName>gemeentenaam</PropertyName>"
        f"<Literal>{literal}</Literal>"
        "</PropertyIsEqualTo></Filter>"
    )


def geometry_centroid(geometry: dict[str, Any] | None) -> tuple[float, float] | None:
    """
    Approximate centroid as the mean of the outer ring vertices.

    Returns ``(latitude, longitude)``; GeoJSON positions are ``[lon, lat]``.
    """

    if not isinstance(geometry, dict):
        return None
    kind = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if kind == "Point" and isinstance(coordinates, list) and len(coordinates) >= 2:
        return float(coordinates[1]), float(coordinates[0])
    if kind == "Polygon" and coordinates:
        ring = coordinates[0]
    elif kind == "MultiPolygon" and coordinates and coordinates[0]:
        ring = coordinates[0][0]
    else:
        return None
    points = [point for point in ring if isinstance(point, list) and len(point) >= 2]
    if not points:
        return None
    latitude = sum(float(point[1]) for point in points) / len(points)
    longitude = sum(float(point[0]) for point in points) / len(points)
    return latitude, longitude


class PdokGeoClient(HttpSourceClient):
    name = "PDOK WFS"
    url = "https://service.pdok.nl/cbs/wijkenbuurten"
    license = "CC BY 4.0"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(http_settings=http_settings, session=session)
        self._wfs_url = settings.pdok_wfs_url.rstrip("/")
        self._cache = TTLCache(MUNICIPALITY_CACHE_SECONDS)

    def _features(self, type_name: str, ctx: CancellationToken, extra: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": type_name,
            "outputFormat": "json",
            "srsName": "EPSG:4326",
        }
        params.update(extra or {})
        payload = self._request_json(method="GET", url=self._wfs_url, ctx=ctx, params=params)
        features = payload.get("features") if isinstance(payload, dict) else None
        return [feature for feature in features or [] if isinstance(feature, dict)]

    def list_neighborhoods(self, city: str, ctx: CancellationToken) -> list[NeighborhoodGeometry]:
        if not city or not city.strip():
            return []
        ctx.raise_if_cancelled()

        features = self._features("wijkenbuurten:buurten", ctx, {"FILTER": municipality_filter(city.strip())})
        results: list[NeighborhoodGeometry] = []
        for feature in features:
            properties = feature.get("properties") or {}
            code = properties.get("buurtcode")
            if not code:
                continue
            centroid = geometry_centroid(feature.get("geometry"))
            results.append(
                NeighborhoodGeometry(
                    code=str(code),
                    name=str(properties.get("buurtnaam") or "Unknown"),
                    type=NEIGHBORHOOD_TYPE,
                    latitude=centroid[0] if centroid else None,
                    longitude=centroid[1] if centroid else None,
                )
            )
        logger.info("Listed neighborhoods city=%s count=%s", city, len(results))
        return results

    def list_municipalities(self, ctx: CancellationToken) -> list[str]:
        cached = self._cache.get("municipalities")
        if cached is not MISSING:
            return list(cached)
        ctx.raise_if_cancelled()

        names = {
            str(name).strip()
            for feature in self._features("wijkenbuurten:gemeenten", ctx)
            if (name := (feature.get("properties") or {}).get("gemeentenaam")) and str(name).strip()
        }
        result = sorted(names)
        self._cache.set("municipalities", result)
        return list(result)
