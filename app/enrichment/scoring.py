"""
app/enrichment/scoring.py

Category and composite score calculation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from app.domain.context_report import ContextMetric


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


def band_score(value: float | None, bands: Iterable[tuple[float, float]], fallback: float) -> float | None:
    """
    Return the score of the first ``(upper_bound, score)`` band containing
    ``value``; ``fallback`` above the last bound. None stays None.
    """

    if value is None:
        return None
    for upper_bound, score in bands:
        if value <= upper_bound:
            return score
    return fallback


def category_score(metrics: Iterable[ContextMetric]) -> float | None:
    """
    Mean of the scored metrics rounded to one decimal; None when none are scored.
    """

    scores = [metric.score for metric in metrics if metric.score is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 1)


def compose(category_scores: Mapping[str, float], weights: Mapping[str, float]) -> float | None:
    """
    Weighted average over categories that are both scored and weighted.

    Weights are renormalized over the present categories, so a missing
    category neither counts as zero nor shifts the others. Returns None when
    nothing overlaps or the overlapping weights sum to zero.
    """

    present = [
        (score, weights[category])
        for category, score in category_scores.items()
        if category in weights and score is not None
    ]
    total_weight = sum(weight for _, weight in present)
    if not present or total_weight <= 0:
        return None
    weighted = sum(score * weight for score, weight in present)
    return round(clamp(weighted / total_weight), 1)
