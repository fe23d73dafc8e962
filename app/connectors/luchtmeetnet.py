"""
app/connectors/luchtmeetnet.py

Air quality from the nearest Luchtmeetnet measuring station.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.base import HttpSourceClient
from app.connectors.geo import haversine_meters
from app.domain.cancellation import CancellationToken
from app.domain.context_report import AirQualitySnapshot, ResolvedLocation
from app.domain.errors import SourceUnavailableError
from app.ttl_cache import MISSING, TTLCache

logger = logging.getLogger(__name__)

STATION_LIST_TTL_SECONDS = 24 * 60 * 60
MAX_STATION_PAGES = 15
STATION_DETAIL_WORKERS = 5
FORMULAS = ("PM25", "PM10", "NO2", "O3")


@dataclass(frozen=True)
class Station:
    id: str
    name: str
    latitude: float
    longitude: float


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class LuchtmeetnetAirQualityClient(HttpSourceClient):
    name = "Luchtmeetnet"
    url = "https://api.luchtmeetnet.nl"
    license = "Open data (RIVM)"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(http_settings=http_settings, session=session)
        self._base_url = settings.luchtmeetnet_base_url.rstrip("/")
        self._snapshot_cache = TTLCache(settings.report_cache_minutes * 60)
        self._station_cache = TTLCache(STATION_LIST_TTL_SECONDS)

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> AirQualitySnapshot | None:
        ctx.raise_if_cancelled()
        cache_key = f"lucht:{location.latitude:.4f}:{location.longitude:.4f}"
        cached = self._snapshot_cache.get(cache_key)
        if cached is not MISSING:
            return cached

        stations = self._stations(ctx)
        if not stations:
            return None
        station, distance = min(
            (
                (candidate, haversine_meters(location.latitude, location.longitude, candidate.latitude, candidate.longitude))
                for candidate in stations
            ),
            key=lambda pair: pair[1],
        )

        measurements = self._latest_measurements(station.id, ctx)
        if not measurements:
            logger.warning("Luchtmeetnet station has no supported measurements station=%s", station.id)
            return None

        latest = next((measurements[formula] for formula in FORMULAS if formula in measurements), None)
        snapshot = AirQualitySnapshot(
            station_id=station.id,
            station_name=station.name,
            station_distance_meters=distance,
            pm25=_value(measurements.get("PM25")),
            pm10=_value(measurements.get("PM10")),
            no2=_value(measurements.get("NO2")),
            o3=_value(measurements.get("O3")),
            measured_at=parse_iso_datetime(latest.get("timestamp_measured")) if latest else None,
        )
        self._snapshot_cache.set(cache_key, snapshot)
        return snapshot

    def _latest_measurements(self, station_id: str, ctx: CancellationToken) -> dict[str, dict[str, Any]]:
        payload = self._request_json(
            method="GET",
            url=f"{self._base_url}/open_api/stations/{station_id}/measurements",
            ctx=ctx,
            params={"order_by": "timestamp_measured", "order_direction": "desc", "page": 1},
        )
        rows = payload.get("data") if isinstance(payload, dict) else None
        latest: dict[str, dict[str, Any]] = {}
        for row in rows or []:
            formula = row.get("formula") if isinstance(row, dict) else None
            # Rows are newest first; keep the first hit per formula.
            if formula in FORMULAS and formula not in latest:
                latest[formula] = row
        return latest

    def _stations(self, ctx: CancellationToken) -> list[Station]:
        cached = self._station_cache.get("stations")
        if cached is not MISSING:
            return cached

        logger.info("Discovering Luchtmeetnet stations")
        station_ids = self._station_ids(ctx)
        with ThreadPoolExecutor(max_workers=STATION_DETAIL_WORKERS) as pool:
            details = list(pool.map(lambda station_id: self._station_detail(station_id, ctx), station_ids))
        stations = [station for station in details if station is not None]
        logger.info("Discovered Luchtmeetnet stations count=%s", len(stations))
        if stations:
            self._station_cache.set("stations", stations)
        return stations

    def _station_ids(self, ctx: CancellationToken) -> list[str]:
        station_ids: list[str] = []
        for page in range(1, MAX_STATION_PAGES + 1):
            payload = self._request_json(
                method="GET",
                url=f"{self._base_url}/open_api/stations",
                ctx=ctx,
                params={"page": page},
            )
            rows = payload.get("data") if isinstance(payload, dict) else None
            if not rows:
                break
            for row in rows:
                if not isinstance(row, dict):
                    continue
                number = row.get("number") or row.get("id")
                if number and number not in station_ids:
                    station_ids.append(str(number))
            last_page = ((payload.get("pagination") or {}).get("last_page")) if isinstance(payload, dict) else None
            if isinstance(last_page, int) and page >= last_page:
                break
        return station_ids

    def _station_detail(self, station_id: str, ctx: CancellationToken) -> Station | None:
        try:
            payload = self._request_json(
                method="GET",
                url=f"{self._base_url}/open_api/stations/{station_id}",
                ctx=ctx,
            )
        except SourceUnavailableError as exc:
            logger.warning("Luchtmeetnet station detail failed station=%s error=%s", station_id, exc)
            return None

        data = payload.get("data") if isinstance(payload, dict) else None
        coordinates = ((data or {}).get("geometry") or {}).get("coordinates")
        if not isinstance(coordinates, list) or len(coordinates) < 2:
            return None
        name = (data or {}).get("location") or (data or {}).get("name") or station_id
        return Station(id=station_id, name=str(name), latitude=float(coordinates[1]), longitude=float(coordinates[0]))


def _value(row: dict[str, Any] | None) -> float | None:
    if row is None:
        return None
    value = row.get("value")
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None
