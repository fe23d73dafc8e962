"""
tests/test_connectors.py

HTTP source clients exercised against a mocked ``requests.Session``.

Coverage
--------
- Shared request loop: retry on 5xx and connection errors, no retry on 4xx,
  invalid JSON, pre-cancelled token
- PDOK resolver parsing, negative caching, listing URL normalization
- CBS region fallback and crime rate conversion
- Overpass element categorization
- Luchtmeetnet nearest station and latest measurement per formula
- PDOK WFS neighborhood and municipality listings
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from app.config import ContextEnrichmentSettings, ExternalHTTPSettings
from app.connectors import (
    CbsCrimeStatsClient,
    CbsNeighborhoodStatsClient,
    LuchtmeetnetAirQualityClient,
    OverpassAmenityClient,
    PdokGeoClient,
    PdokLocationResolver,
)
from app.connectors.cbs_crime import rate_per_1000
from app.connectors.geo import normalize_input, parse_wkt_point, prefix_code
from app.connectors.overpass import summarize_elements
from app.connectors.pdok_geo import geometry_centroid, municipality_filter
from app.domain.cancellation import CancellationToken
from app.domain.errors import OperationCancelledError, SourceUnavailableError
from tests.fakes import make_location

HTTP_SETTINGS = ExternalHTTPSettings(
    timeout_seconds=1.0,
    max_retries=2,
    backoff_initial_seconds=0.0,
    backoff_multiplier=1.0,
    rate_limit_per_second=0.0,
)
SETTINGS = ContextEnrichmentSettings()


def _response(status: int = 200, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}", response=response)
    return response


def _session(*responses) -> MagicMock:
    session = MagicMock()
    session.request.side_effect = list(responses)
    return session


def _crime_client(session) -> CbsCrimeStatsClient:
    return CbsCrimeStatsClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)


CRIME_ROW = {
    "WijkenEnBuurten": "BU03630000",
    "AantalInwoners_5": 2000,
    "TotaalDiefstalUitWoningSchuurED_106": 8,
    "VernielingMisdrijfTegenOpenbareOrde_107": 16,
    "GeweldsEnSeksueleMisdrijven_108": 6,
}


# ---------------------------------------------------------------------------
# Shared request loop
# ---------------------------------------------------------------------------


class TestRequestLoop:
    def test_retries_retryable_status(self, ctx) -> None:
        session = _session(_response(503), _response(200, {"value": [CRIME_ROW]}))
        stats = _crime_client(session).fetch(make_location(), 1000, ctx)
        assert stats is not None
        assert session.request.call_count == 2

    def test_exhausted_retries_raise_source_unavailable(self, ctx) -> None:
        session = _session(_response(503), _response(502), _response(504))
        with pytest.raises(SourceUnavailableError) as excinfo:
            _crime_client(session).fetch(make_location(), 1000, ctx)
        assert excinfo.value.source == "CBS Crime"
        assert session.request.call_count == HTTP_SETTINGS.max_retries + 1

    def test_client_error_is_not_retried(self, ctx) -> None:
        session = _session(_response(404))
        with pytest.raises(SourceUnavailableError):
            _crime_client(session).fetch(make_location(), 1000, ctx)
        assert session.request.call_count == 1

    def test_connection_error_is_retried(self, ctx) -> None:
        session = _session(requests.ConnectionError("reset"), _response(200, {"value": [CRIME_ROW]}))
        assert _crime_client(session).fetch(make_location(), 1000, ctx) is not None

    def test_invalid_json_is_source_unavailable(self, ctx) -> None:
        broken = _response(200)
        broken.json.side_effect = ValueError("not json")
        with pytest.raises(SourceUnavailableError):
            _crime_client(_session(broken)).fetch(make_location(), 1000, ctx)

    def test_cancelled_token_never_calls_upstream(self) -> None:
        token = CancellationToken()
        token.cancel()
        session = _session()
        with pytest.raises(OperationCancelledError):
            _crime_client(session).fetch(make_location(), 1000, token)
        session.request.assert_not_called()


# ---------------------------------------------------------------------------
# PDOK resolver
# ---------------------------------------------------------------------------


class TestPdokResolver:
    DOC = {
        "weergavenaam": "Damrak 1, 1012LG Amsterdam",
        "centroide_ll": "POINT(4.88969 52.37403)",
        "centroide_rd": "POINT(121393.5 487814.2)",
        "gemeentecode": "0363",
        "gemeentenaam": "Amsterdam",
        "wijkcode": "WK036300",
        "buurtcode": "BU03630000",
        "buurtnaam": "Kop Zeedijk",
        "postcode": "1012LG",
    }

    def _resolver(self, session) -> PdokLocationResolver:
        return PdokLocationResolver(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)

    def test_parses_first_address_doc(self, ctx) -> None:
        session = _session(_response(200, {"response": {"docs": [self.DOC]}}))
        location = self._resolver(session).resolve("Damrak 1 Amsterdam", ctx)

        assert location.latitude == 52.37403
        assert location.longitude == 4.88969
        assert location.rd_x == 121393.5
        assert location.municipality_code == "GM0363"
        assert location.neighborhood_code == "BU03630000"
        assert session.request.call_args.kwargs["params"]["fq"] == "type:adres"

    def test_cached_hit_echoes_new_query(self, ctx) -> None:
        session = _session(_response(200, {"response": {"docs": [self.DOC]}}))
        resolver = self._resolver(session)
        resolver.resolve("Damrak 1 Amsterdam", ctx)
        again = resolver.resolve("  Damrak 1 Amsterdam ", ctx)
        assert again.query == "  Damrak 1 Amsterdam "
        assert session.request.call_count == 1

    def test_no_match_is_cached(self, ctx) -> None:
        session = _session(_response(200, {"response": {"docs": []}}))
        resolver = self._resolver(session)
        assert resolver.resolve("Nowhere", ctx) is None
        assert resolver.resolve("Nowhere", ctx) is None
        assert session.request.call_count == 1

    def test_blank_input_skips_upstream(self, ctx) -> None:
        session = _session()
        assert self._resolver(session).resolve("   ", ctx) is None
        session.request.assert_not_called()


class TestGeoHelpers:
    def test_parse_wkt_point(self) -> None:
        assert parse_wkt_point("POINT(4.5 52.1)") == (4.5, 52.1)
        assert parse_wkt_point("POINT(abc)") is None
        assert parse_wkt_point(None) is None

    def test_prefix_code(self) -> None:
        assert prefix_code("0363", "GM") == "GM0363"
        assert prefix_code("gm0363", "GM") == "GM0363"
        assert prefix_code(" ", "GM") is None

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("  Damrak 1 Amsterdam ", "Damrak 1 Amsterdam"),
            ("https://example.nl/search?address=Damrak%201%20Amsterdam", "Damrak 1 Amsterdam"),
            ("https://www.funda.nl/koop/amsterdam/huis-damrak-1", "huis damrak 1"),
        ],
    )
    def test_normalize_input(self, text, expected) -> None:
        assert normalize_input(text) == expected


# ---------------------------------------------------------------------------
# CBS
# ---------------------------------------------------------------------------


class TestCbs:
    def test_falls_back_to_district_when_neighborhood_missing(self, ctx) -> None:
        row = {"WijkenEnBuurten": "WK036300  ", "SoortRegio_2": "Wijk      ", "AantalInwoners_5": 5000}
        session = _session(_response(200, {"value": []}), _response(200, {"value": [row]}))
        client = CbsNeighborhoodStatsClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)

        stats = client.fetch(make_location(), 1000, ctx)

        assert stats.region_code == "WK036300"
        assert stats.region_type == "Wijk"
        assert stats.residents == 5000
        assert stats.average_woz_value_keur is None
        filters = [call.kwargs["params"]["$filter"] for call in session.request.call_args_list]
        assert filters == ["WijkenEnBuurten eq 'BU03630000'", "WijkenEnBuurten eq 'WK036300  '"]

    def test_crime_counts_become_rates(self, ctx) -> None:
        stats = _crime_client(_session(_response(200, {"value": [CRIME_ROW]}))).fetch(make_location(), 1000, ctx)
        assert stats.theft_per_1000 == 4
        assert stats.burglary_per_1000 == 4
        assert stats.vandalism_per_1000 == 8
        assert stats.violent_crime_per_1000 == 3
        assert stats.total_crimes_per_1000 == 15

    def test_rate_rounds_half_away_from_zero(self) -> None:
        assert rate_per_1000(25, 2000) == 13
        assert rate_per_1000(5, None) == 5
        assert rate_per_1000(None, 100) is None


# ---------------------------------------------------------------------------
# Overpass
# ---------------------------------------------------------------------------


class TestOverpass:
    def test_summarize_elements(self) -> None:
        elements = [
            {"lat": 52.3741, "lon": 4.8897, "tags": {"amenity": "school"}},
            {"center": {"lat": 52.375, "lon": 4.89}, "tags": {"shop": "supermarket"}},
            {"lat": 52.38, "lon": 4.9, "tags": {"highway": "bus_stop"}},
            {"lat": 52.38, "lon": 4.9, "tags": {"amenity": "pharmacy"}},
            {"tags": {"amenity": "school"}},
        ]
        stats = summarize_elements(elements, 52.37403, 4.88969)
        assert stats.school_count == 1
        assert stats.supermarket_count == 1
        assert stats.transit_stop_count == 1
        assert stats.healthcare_count == 1
        assert stats.park_count == 0
        assert stats.diversity_score == pytest.approx(4 / 6 * 100)
        assert stats.nearest_amenity_distance_meters < 20

    def test_missing_elements_is_no_data(self, ctx) -> None:
        client = OverpassAmenityClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=_session(_response(200, {})))
        assert client.fetch(make_location(), 1000, ctx) is None

    def test_posts_query_with_radius(self, ctx) -> None:
        session = _session(_response(200, {"elements": []}))
        client = OverpassAmenityClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)
        stats = client.fetch(make_location(), 750, ctx)
        assert stats.nearest_amenity_distance_meters is None
        assert "around:750," in session.request.call_args.kwargs["data"]["data"]


# ---------------------------------------------------------------------------
# Luchtmeetnet
# ---------------------------------------------------------------------------


def _luchtmeetnet_router(method, url, **kwargs):
    if url.endswith("/open_api/stations"):
        return _response(200, {"pagination": {"last_page": 1}, "data": [{"number": "NL49014"}, {"number": "NL01491"}]})
    if url.endswith("/open_api/stations/NL49014"):
        return _response(
            200,
            {"data": {"location": "Amsterdam-Vondelpark", "geometry": {"coordinates": [4.86, 52.36]}}},
        )
    if url.endswith("/open_api/stations/NL01491"):
        return _response(200, {"data": {"location": "Nijmegen-Ruyterstraat", "geometry": {"coordinates": [5.86, 51.84]}}})
    if url.endswith("/open_api/stations/NL49014/measurements"):
        return _response(
            200,
            {
                "data": [
                    {"formula": "PM25", "value": 8.0, "timestamp_measured": "2026-03-01T11:00:00Z"},
                    {"formula": "NO2", "value": 25, "timestamp_measured": "2026-03-01T11:00:00Z"},
                    {"formula": "PM25", "value": 99.0, "timestamp_measured": "2026-03-01T10:00:00Z"},
                    {"formula": "SO2", "value": 1.0, "timestamp_measured": "2026-03-01T11:00:00Z"},
                ]
            },
        )
    return _response(404)


class TestLuchtmeetnet:
    def test_nearest_station_latest_measurements(self, ctx) -> None:
        session = MagicMock()
        session.request.side_effect = _luchtmeetnet_router
        client = LuchtmeetnetAirQualityClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)

        snapshot = client.fetch(make_location(), 1000, ctx)

        assert snapshot.station_id == "NL49014"
        assert snapshot.station_name == "Amsterdam-Vondelpark"
        assert snapshot.pm25 == 8.0
        assert snapshot.no2 == 25.0
        assert snapshot.pm10 is None
        assert snapshot.measured_at.isoformat() == "2026-03-01T11:00:00+00:00"

        calls = session.request.call_count
        client.fetch(make_location(), 1000, ctx)
        assert session.request.call_count == calls


# ---------------------------------------------------------------------------
# PDOK WFS
# ---------------------------------------------------------------------------


class TestPdokGeo:
    def _client(self, session) -> PdokGeoClient:
        return PdokGeoClient(settings=SETTINGS, http_settings=HTTP_SETTINGS, session=session)

    def test_lists_neighborhoods_with_centroids(self, ctx) -> None:
        features = [
            {
                "properties": {"buurtcode": "BU03440101", "buurtnaam": "Binnenstad"},
                "geometry": {"type": "Polygon", "coordinates": [[[5.0, 52.0], [5.2, 52.0], [5.2, 52.2], [5.0, 52.2]]]},
            },
            {"properties": {"buurtnaam": "No code"}},
            {"properties": {"buurtcode": "BU03440102"}, "geometry": None},
        ]
        session = _session(_response(200, {"features": features}))

        listed = self._client(session).list_neighborhoods("Utrecht", ctx)

        assert [n.code for n in listed] == ["BU03440101", "BU03440102"]
        assert listed[0].latitude == pytest.approx(52.1)
        assert listed[0].longitude == pytest.approx(5.1)
        assert listed[1].name == "Unknown"
        assert listed[1].latitude is None
        assert "<Literal>Utrecht</Literal>" in session.request.call_args.kwargs["params"]["FILTER"]

    def test_municipalities_sorted_unique_and_cached(self, ctx) -> None:
        features = [
            {"properties": {"gemeentenaam": "Utrecht"}},
            {"properties": {"gemeentenaam": "Amsterdam"}},
            {"properties": {"gemeentenaam": "Utrecht"}},
            {"properties": {"gemeentenaam": " "}},
        ]
        session = _session(_response(200, {"features": features}))
        client = self._client(session)

        assert client.list_municipalities(ctx) == ["Amsterdam", "Utrecht"]
        assert client.list_municipalities(ctx) == ["Amsterdam", "Utrecht"]
        assert session.request.call_count == 1

    def test_filter_escapes_quotes(self) -> None:
        assert "<Literal>&apos;s-Hertogenbosch</Literal>" in municipality_filter("'s-Hertogenbosch")

    def test_point_and_multipolygon_centroids(self) -> None:
        assert geometry_centroid({"type": "Point", "coordinates": [5.1, 52.1]}) == (52.1, 5.1)
        multi = {"type": "MultiPolygon", "coordinates": [[[[4.0, 51.0], [6.0, 53.0]]]]}
        assert geometry_centroid(multi) == (52.0, 5.0)
        assert geometry_centroid({"type": "LineString", "coordinates": []}) is None
