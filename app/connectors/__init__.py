"""
app/connectors package marker.
"""

from app.connectors.base import GeoClient, HttpSourceClient, LocationResolver, SourceClient
from app.connectors.cbs_crime import CbsCrimeStatsClient
from app.connectors.cbs_stats import CbsDemographicsClient, CbsNeighborhoodStatsClient
from app.connectors.luchtmeetnet import LuchtmeetnetAirQualityClient
from app.connectors.overpass import OverpassAmenityClient
from app.connectors.pdok_geo import PdokGeoClient
from app.connectors.pdok_resolver import PdokLocationResolver

__all__ = [
    "CbsCrimeStatsClient",
    "CbsDemographicsClient",
    "CbsNeighborhoodStatsClient",
    "GeoClient",
    "HttpSourceClient",
    "LocationResolver",
    "LuchtmeetnetAirQualityClient",
    "OverpassAmenityClient",
    "PdokGeoClient",
    "PdokLocationResolver",
    "SourceClient",
]
