"""
app/enrichment package marker.
"""

from app.enrichment.aggregator import SourceAggregator
from app.enrichment.registry import DEFAULT_REGISTRATIONS, CategoryRegistration, run_builders
from app.enrichment.report_cache import ReportCache, report_cache_key
from app.enrichment.scoring import category_score, compose

__all__ = [
    "CategoryRegistration",
    "DEFAULT_REGISTRATIONS",
    "ReportCache",
    "SourceAggregator",
    "category_score",
    "compose",
    "report_cache_key",
    "run_builders",
]
