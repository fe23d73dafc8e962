"""
app/enrichment/report_cache.py

Time-bounded memo of built context reports keyed by rounded coordinates.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Callable

from app.domain.context_report import ContextReport
from app.ttl_cache import MISSING, TTLCache

CACHE_KEY_PREFIX = "context-report:v3"


def report_cache_key(latitude: float, longitude: float, radius_meters: int) -> str:
    """
    Coordinates rounded to 5 decimals (about 1 m) so near-duplicate
    addresses share one entry.
    """

    return f"{CACHE_KEY_PREFIX}:{latitude:.5f}_{longitude:.5f}:{radius_meters}"


class ReportCache:
    """
    Stores and hands out deep copies so callers never share mutable lists.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._cache = TTLCache(ttl_seconds, clock=clock)

    def get(self, latitude: float, longitude: float, radius_meters: int) -> ContextReport | None:
        cached = self._cache.get(report_cache_key(latitude, longitude, radius_meters))
        if cached is MISSING:
            return None
        return copy.deepcopy(cached)

    def set(self, report: ContextReport, radius_meters: int) -> None:
        key = report_cache_key(report.location.latitude, report.location.longitude, radius_meters)
        self._cache.set(key, copy.deepcopy(report))

    def clear(self) -> None:
        self._cache.clear()
