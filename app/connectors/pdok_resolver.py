"""
app/connectors/pdok_resolver.py

Address resolution through the PDOK Locatieserver.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors.base import HttpSourceClient
from app.connectors.geo import normalize_input, parse_wkt_point, prefix_code
from app.domain.cancellation import CancellationToken
from app.domain.context_report import ResolvedLocation
from app.ttl_cache import MISSING, TTLCache

logger = logging.getLogger(__name__)


class PdokLocationResolver(HttpSourceClient):
    """
    Resolve free text or a listing URL to one Dutch address.

    Only ``type:adres`` documents match, so bare city or street names do not
    resolve. Negative lookups are cached as well.
    """

    name = "PDOK Locatieserver"
    url = "https://api.pdok.nl/bzk/locatieserver/search/v3_1"
    license = "CC0"

    def __init__(
        self,
        *,
        settings: ContextEnrichmentSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(http_settings=http_settings, session=session)
        self._base_url = settings.pdok_base_url.rstrip("/")
        self._cache = TTLCache(settings.resolver_cache_minutes * 60)

    def resolve(self, text: str, ctx: CancellationToken) -> ResolvedLocation | None:
        if not text or not text.strip():
            return None
        ctx.raise_if_cancelled()

        normalized = normalize_input(text)
        cache_key = f"pdok-resolve:{normalized}"
        cached = self._cache.get(cache_key)
        if cached is not MISSING:
            return replace(cached, query=text) if cached is not None else None

        payload = self._request_json(
            method="GET",
            url=f"{self._base_url}/bzk/locatieserver/search/v3_1/free",
            ctx=ctx,
            params={"q": normalized, "fq": "type:adres", "rows": 1},
        )
        docs = (payload.get("response") or {}).get("docs") if isinstance(payload, dict) else None
        if not isinstance(docs, list) or not docs:
            self._cache.set(cache_key, None)
            return None

        location = self._parse_doc(docs[0], query=text, normalized=normalized)
        if location is None:
            logger.warning("PDOK response did not include valid coordinates query=%s", normalized)
            return None
        self._cache.set(cache_key, location)
        return location

    @staticmethod
    def _parse_doc(doc: dict[str, Any], *, query: str, normalized: str) -> ResolvedLocation | None:
        point_ll = parse_wkt_point(doc.get("centroide_ll"))
        if point_ll is None:
            return None
        point_rd = parse_wkt_point(doc.get("centroide_rd"))

        def _text(key: str) -> str | None:
            value = doc.get(key)
            return str(value) if value not in (None, "") else None

        return ResolvedLocation(
            query=query,
            display_address=_text("weergavenaam") or normalized,
            latitude=point_ll[1],
            longitude=point_ll[0],
            rd_x=point_rd[0] if point_rd else None,
            rd_y=point_rd[1] if point_rd else None,
            municipality_code=prefix_code(_text("gemeentecode"), "GM"),
            municipality_name=_text("gemeentenaam"),
            district_code=_text("wijkcode"),
            district_name=_text("wijknaam"),
            neighborhood_code=_text("buurtcode"),
            neighborhood_name=_text("buurtnaam"),
            postal_code=_text("postcode"),
        )
