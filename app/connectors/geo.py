"""
app/connectors/geo.py

Geographic helpers shared by the source clients.
"""

from __future__ import annotations

import math
import re
from urllib.parse import parse_qsl, unquote, urlparse

EARTH_RADIUS_METERS = 6_371_000.0

_WKT_POINT_PATTERN = re.compile(
    r"^\s*POINT\s*\(\s*(-?\d+(?:\.\d+)?)\s+(-?\d+(?:\.\d+)?)\s*\)\s*$",
    re.IGNORECASE,
)
_QUERY_HINT_KEYS = {"q", "query", "address", "location", "loc"}


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def parse_wkt_point(value: str | None) -> tuple[float, float] | None:
    """
    Parse ``POINT(x y)`` into an ``(x, y)`` tuple; None when malformed.
    """

    if not value:
        return None
    match = _WKT_POINT_PATTERN.match(value)
    if match is None:
        return None
    return float(match.group(1)), float(match.group(2))


def prefix_code(code: str | None, prefix: str) -> str | None:
    if code is None or not code.strip():
        return None
    code = code.strip()
    if code.upper().startswith(prefix.upper()):
        return code.upper()
    return f"{prefix}{code}"


def normalize_input(text: str) -> str:
    """
    Reduce listing URLs to a searchable address string.

    A query parameter such as ``address=`` wins; otherwise the last path
    segment is used with separators turned into spaces. Plain text is
    returned stripped.
    """

    stripped = text.strip()
    parsed = urlparse(stripped)
    if not parsed.scheme or not parsed.netloc:
        return stripped

    for key, value in parse_qsl(parsed.query):
        if key.lower() in _QUERY_HINT_KEYS:
            candidate = value.strip()
            if any(ch.isalnum() for ch in candidate):
                return candidate

    segments = [segment for segment in parsed.path.split("/") if segment.strip()]
    if segments:
        slug = unquote(segments[-1]).replace("-", " ").replace("_", " ").strip()
        if "funda.nl" in parsed.netloc.lower() and slug:
            return slug
        if any(ch.isalpha() for ch in slug):
            return slug
    return stripped
