"""
app/connectors/cbs_crime.py

CBS registered-crime counts converted to rates per 1000 residents.
"""

from __future__ import annotations

import math

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.cbs_stats import CbsODataClient, as_int
from app.domain.cancellation import CancellationToken
from app.domain.context_report import CrimeStats, ResolvedLocation

CRIME_FIELDS = (
    "WijkenEnBuurten",
    "AantalInwoners_5",
    "TotaalDiefstalUitWoningSchuurED_106",
    "VernielingMisdrijfTegenOpenbareOrde_107",
    "GeweldsEnSeksueleMisdrijven_108",
)


def rate_per_1000(count: int | None, residents: int | None) -> int | None:
    """
    Convert an absolute count into a rate per 1000 residents.

    Rounds half away from zero. Without a usable resident count the raw count
    is returned unchanged.
    """

    if count is None:
        return None
    if residents is None or residents <= 0:
        return count
    rate = count * 1000 / residents
    return int(math.copysign(math.floor(abs(rate) + 0.5), rate))


class CbsCrimeStatsClient(CbsODataClient):
    name = "CBS Crime"

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
            table=settings.cbs_crime_table,
            fields=CRIME_FIELDS,
            session=session,
        )

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> CrimeStats | None:
        row = self._find_row(location, ctx)
        if row is None:
            return None

        residents = as_int(row, "AantalInwoners_5")
        theft = rate_per_1000(as_int(row, "TotaalDiefstalUitWoningSchuurED_106"), residents)
        vandalism = rate_per_1000(as_int(row, "VernielingMisdrijfTegenOpenbareOrde_107"), residents)
        violent = rate_per_1000(as_int(row, "GeweldsEnSeksueleMisdrijven_108"), residents)

        present = [rate for rate in (theft, vandalism, violent) if rate is not None]
        total = sum(present) if present else None

        # CBS only publishes "theft from home"; it doubles as the burglary rate.
        return CrimeStats(
            total_crimes_per_1000=total,
            burglary_per_1000=theft,
            violent_crime_per_1000=violent,
            theft_per_1000=theft,
            vandalism_per_1000=vandalism,
        )
