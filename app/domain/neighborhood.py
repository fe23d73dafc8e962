"""
app/domain/neighborhood.py

Domain models for neighborhood geometry listings and persisted stat upserts.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NeighborhoodGeometry:
    """
    Neighborhood as listed by the geo collaborator for one municipality.
    """

    code: str
    name: str
    type: str
    latitude: float | None
    longitude: float | None


@dataclass(frozen=True)
class NeighborhoodUpsert:
    """
    Row payload for the neighborhood upsert.

    Only the stat fields are refreshed for codes that already exist.
    """

    code: str
    name: str
    city: str
    type: str
    latitude: float | None
    longitude: float | None
    population_density: float | None
    average_woz_value: float | None
    crime_rate: float | None


@dataclass(frozen=True)
class UpsertSummary:
    inserted: int
    updated: int

    @property
    def total(self) -> int:
        return self.inserted + self.updated
