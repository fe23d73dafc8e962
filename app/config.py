"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    "social": 0.20,
    "safety": 0.20,
    "demographics": 0.10,
    "housing": 0.10,
    "amenities": 0.25,
    "environment": 0.15,
}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def parse_weight_overrides(raw: str) -> dict[str, float]:
    """
    Parse ``category=weight`` pairs separated by commas.

    Malformed tokens and negative weights are skipped with a WARNING log.
    """

    overrides: dict[str, float] = {}
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        parts = token.split("=", 1)
        if len(parts) != 2:
            logger.warning("CONTEXT_SCORE_WEIGHTS: skipping malformed token %r", token)
            continue
        category = parts[0].strip().lower()
        try:
            weight = float(parts[1])
        except ValueError:
            logger.warning("CONTEXT_SCORE_WEIGHTS: skipping non-numeric weight %r", token)
            continue
        if not category or weight < 0:
            logger.warning("CONTEXT_SCORE_WEIGHTS: skipping invalid token %r", token)
            continue
        overrides[category] = weight
    return overrides


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for external source clients.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class ContextEnrichmentSettings:
    """
    Upstream endpoints and caching windows for context reports.
    """

    pdok_base_url: str = "https://api.pdok.nl"
    pdok_wfs_url: str = "https://service.pdok.nl/cbs/wijkenbuurten/2023/wfs/v1_0"
    cbs_base_url: str = "https://opendata.cbs.nl/ODataApi/odata"
    cbs_stats_table: str = "85618NED"
    cbs_crime_table: str = "83765NED"
    cbs_demographics_table: str = "83765NED"
    cbs_cache_minutes: int = 1440
    overpass_base_url: str = "https://overpass-api.de"
    luchtmeetnet_base_url: str = "https://api.luchtmeetnet.nl"
    report_cache_minutes: int = 60
    resolver_cache_minutes: int = 1440
    default_radius_meters: int = 1000
    min_radius_meters: int = 200
    max_radius_meters: int = 5000
    source_timeout_seconds: float = 20.0


@dataclass(frozen=True)
class ScoringSettings:
    """
    Category weights for the composite livability score.
    """

    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS))


@dataclass(frozen=True)
class BatchJobSettings:
    """
    Runtime settings for the batch job executor and ingestion processors.
    """

    ingestion_batch_size: int = 10
    lease_timeout_seconds: int = 900
    poll_interval_seconds: float = 5.0
    executor_enabled: bool = True


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared source client HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_context_enrichment_settings() -> ContextEnrichmentSettings:
    """
    Return context enrichment settings from environment variables.
    """

    min_radius = max(1, _get_int_env("CONTEXT_MIN_RADIUS_METERS", 200))
    max_radius = max(min_radius, _get_int_env("CONTEXT_MAX_RADIUS_METERS", 5000))
    return ContextEnrichmentSettings(
        pdok_base_url=_get_str_env("PDOK_BASE_URL", "https://api.pdok.nl"),
        pdok_wfs_url=_get_str_env(
            "PDOK_WFS_URL", "https://service.pdok.nl/cbs/wijkenbuurten/2023/wfs/v1_0"
        ),
        cbs_base_url=_get_str_env("CBS_BASE_URL", "https://opendata.cbs.nl/ODataApi/odata"),
        cbs_stats_table=_get_str_env("CBS_STATS_TABLE", "85618NED"),
        cbs_crime_table=_get_str_env("CBS_CRIME_TABLE", "83765NED"),
        cbs_demographics_table=_get_str_env("CBS_DEMOGRAPHICS_TABLE", "83765NED"),
        cbs_cache_minutes=max(1, _get_int_env("CBS_CACHE_MINUTES", 1440)),
        overpass_base_url=_get_str_env("OVERPASS_BASE_URL", "https://overpass-api.de"),
        luchtmeetnet_base_url=_get_str_env("LUCHTMEETNET_BASE_URL", "https://api.luchtmeetnet.nl"),
        report_cache_minutes=max(1, _get_int_env("CONTEXT_REPORT_CACHE_MINUTES", 60)),
        resolver_cache_minutes=max(1, _get_int_env("CONTEXT_RESOLVER_CACHE_MINUTES", 1440)),
        default_radius_meters=_get_int_env("CONTEXT_DEFAULT_RADIUS_METERS", 1000),
        min_radius_meters=min_radius,
        max_radius_meters=max_radius,
        source_timeout_seconds=max(1.0, _get_float_env("CONTEXT_SOURCE_TIMEOUT_SECONDS", 20.0)),
    )


@lru_cache(maxsize=1)
def get_scoring_settings() -> ScoringSettings:
    """
    Return scoring weights, applying ``CONTEXT_SCORE_WEIGHTS`` overrides.
    """

    weights = dict(DEFAULT_CATEGORY_WEIGHTS)
    weights.update(parse_weight_overrides(_get_str_env("CONTEXT_SCORE_WEIGHTS", "")))
    return ScoringSettings(weights=weights)


@lru_cache(maxsize=1)
def get_batch_job_settings() -> BatchJobSettings:
    """
    Return batch job executor settings from environment variables.
    """

    return BatchJobSettings(
        ingestion_batch_size=max(1, _get_int_env("BATCH_INGEST_BATCH_SIZE", 10)),
        lease_timeout_seconds=max(30, _get_int_env("BATCH_JOB_LEASE_TIMEOUT_SECONDS", 900)),
        poll_interval_seconds=max(0.5, _get_float_env("BATCH_JOB_POLL_INTERVAL_SECONDS", 5.0)),
        executor_enabled=_get_bool_env("BATCH_JOB_EXECUTOR_ENABLED", True),
    )
