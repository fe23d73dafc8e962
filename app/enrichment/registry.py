"""
app/enrichment/registry.py

Registered (category, source, builder) triples driving report assembly.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from app.domain.context_report import (
    CATEGORY_AMENITIES,
    CATEGORY_DEMOGRAPHICS,
    CATEGORY_ENVIRONMENT,
    CATEGORY_HOUSING,
    CATEGORY_SAFETY,
    CATEGORY_SOCIAL,
    CategoryBuildResult,
)
from app.enrichment import builders

Builder = Callable[[Any], CategoryBuildResult]


@dataclass(frozen=True)
class CategoryRegistration:
    """
    Binds a category to the source whose payload feeds its builder.
    """

    category: str
    source: str
    build: Builder


DEFAULT_REGISTRATIONS: tuple[CategoryRegistration, ...] = (
    CategoryRegistration(CATEGORY_SOCIAL, "CBS", builders.build_social),
    CategoryRegistration(CATEGORY_SAFETY, "CBS Crime", builders.build_safety),
    CategoryRegistration(CATEGORY_DEMOGRAPHICS, "CBS Demographics", builders.build_demographics),
    CategoryRegistration(CATEGORY_HOUSING, "CBS", builders.build_housing),
    CategoryRegistration(CATEGORY_AMENITIES, "Overpass", builders.build_amenities),
    CategoryRegistration(CATEGORY_ENVIRONMENT, "Luchtmeetnet", builders.build_environment),
)


def run_builders(
    per_source: dict[str, Any],
    registrations: Sequence[CategoryRegistration] = DEFAULT_REGISTRATIONS,
) -> list[CategoryBuildResult]:
    """
    Run every registered builder in registration order.

    A source missing from ``per_source`` is treated the same as a failed one.
    """

    return [registration.build(per_source.get(registration.source)) for registration in registrations]
