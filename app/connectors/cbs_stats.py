"""
app/connectors/cbs_stats.py

CBS Open Data (OData) clients for neighborhood statistics and demographics.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.base import HttpSourceClient
from app.domain.cancellation import CancellationToken
from app.domain.context_report import Demographics, NeighborhoodStats, ResolvedLocation
from app.ttl_cache import MISSING, TTLCache

logger = logging.getLogger(__name__)

CBS_REGION_CODE_WIDTH = 10

STATS_FIELDS = (
    "WijkenEnBuurten",
    "SoortRegio_2",
    "AantalInwoners_5",
    "Bevolkingsdichtheid_34",
    "GemiddeldeWOZWaardeVanWoningen_36",
    "HuishoudensMetEenLaagInkomen_73",
    "Koopwoningen_41",
    "HuurwoningenTotaal_42",
    "InBezitWoningcorporatie_43",
    "InBezitOverigeVerhuurders_44",
    "BouwjaarVoor2000_46",
    "BouwjaarVanaf2000_47",
    "PercentageMeergezinswoning_38",
)

DEMOGRAPHICS_FIELDS = (
    "WijkenEnBuurten",
    "k_0Tot15Jaar_8",
    "k_15Tot25Jaar_9",
    "k_25Tot45Jaar_10",
    "k_45Tot65Jaar_11",
    "k_65JaarOfOuder_12",
    "GemiddeldeHuishoudensgrootte_32",
    "Koopwoningen_40",
    "Eenpersoonshuishoudens_29",
    "HuishoudensMetKinderen_31",
)


def region_candidates(location: ResolvedLocation) -> Iterator[str]:
    """
    Yield CBS region codes from most to least specific, padded to CBS width.
    """

    for code in (location.neighborhood_code, location.district_code, location.municipality_code):
        if code and code.strip():
            yield code.strip().ljust(CBS_REGION_CODE_WIDTH)


def as_int(row: dict[str, Any], key: str) -> int | None:
    value = row.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def as_float(row: dict[str, Any], key: str) -> float | None:
    value = row.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class CbsODataClient(HttpSourceClient):
    """
    Shared lookup of one ``TypedDataSet`` row per region code.
    """

    url = "https://opendata.cbs.nl"
    license = "CC BY 4.0"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        table: str,
        fields: tuple[str, ...],
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(http_settings=http_settings, session=session)
        self._base_url = settings.cbs_base_url.rstrip("/")
        self._table = table
        self._fields = fields
        self._cache = TTLCache(settings.cbs_cache_minutes * 60)

    def _find_row(self, location: ResolvedLocation, ctx: CancellationToken) -> dict[str, Any] | None:
        for code in region_candidates(location):
            row = self._fetch_row(code, ctx)
            if row is not None:
                return row
        return None

    def _fetch_row(self, region_code: str, ctx: CancellationToken) -> dict[str, Any] | None:
        ctx.raise_if_cancelled()
        cache_key = f"{self._table}:{region_code.strip()}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return cached

        payload = self._request_json(
            method="GET",
            url=f"{self._base_url}/{self._table}/TypedDataSet",
            ctx=ctx,
            params={
                "$filter": f"WijkenEnBuurten eq '{region_code}'",
                "$top": 1,
                "$select": ",".join(self._fields),
            },
        )
        values = payload.get("value") if isinstance(payload, dict) else None
        row = values[0] if isinstance(values, list) and values and isinstance(values[0], dict) else None
        if row is None:
            logger.debug("CBS lookup returned no rows table=%s region=%s", self._table, region_code.strip())
        self._cache.set(cache_key, row)
        return row


class CbsNeighborhoodStatsClient(CbsODataClient):
    name = "CBS"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(
            settings=settings,
            http_settings=http_settings,
            table=settings.cbs_stats_table,
            fields=STATS_FIELDS,
            session=session,
        )

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> NeighborhoodStats | None:
        row = self._find_row(location, ctx)
        if row is None:
            return None
        region_code = str(row.get("WijkenEnBuurten") or "").strip()
        region_type = str(row.get("SoortRegio_2") or "").strip()
        return NeighborhoodStats(
            region_code=region_code,
            region_type=region_type or "Onbekend",
            residents=as_int(row, "AantalInwoners_5"),
            population_density=as_int(row, "Bevolkingsdichtheid_34"),
            average_woz_value_keur=as_float(row, "GemiddeldeWOZWaardeVanWoningen_36"),
            low_income_households_percent=as_float(row, "HuishoudensMetEenLaagInkomen_73"),
            percentage_owner_occupied=as_int(row, "Koopwoningen_41"),
            percentage_rental=as_int(row, "HuurwoningenTotaal_42"),
            percentage_social_housing=as_int(row, "InBezitWoningcorporatie_43"),
            percentage_private_rental=as_int(row, "InBezitOverigeVerhuurders_44"),
            percentage_pre2000=as_int(row, "BouwjaarVoor2000_46"),
            percentage_post2000=as_int(row, "BouwjaarVanaf2000_47"),
            percentage_multi_family=as_int(row, "PercentageMeergezinswoning_38"),
        )


class CbsDemographicsClient(CbsODataClient):
    name = "CBS Demographics"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(
            settings=settings,
            http_settings=http_settings,
            table=settings.cbs_demographics_table,
            fields=DEMOGRAPHICS_FIELDS,
            session=session,
        )

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> Demographics | None:
        row = self._find_row(location, ctx)
        if row is None:
            return None
        return Demographics(
            percent_age_0_to_14=as_int(row, "k_0Tot15Jaar_8"),
            percent_age_15_to_24=as_int(row, "k_15Tot25Jaar_9"),
            percent_age_25_to_44=as_int(row, "k_25Tot45Jaar_10"),
            percent_age_45_to_64=as_int(row, "k_45Tot65Jaar_11"),
            percent_age_65_plus=as_int(row, "k_65JaarOfOuder_12"),
            average_household_size=as_float(row, "GemiddeldeHuishoudensgrootte_32"),
            percent_owner_occupied=as_int(row, "Koopwoningen_40"),
            percent_single_households=as_int(row, "Eenpersoonshuishoudens_29"),
            percent_family_households=as_int(row, "HuishoudensMetKinderen_31"),
        )
