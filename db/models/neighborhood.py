"""
db/models/neighborhood.py

Neighborhood rows keyed by their CBS code with denormalized stat columns.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

# Refreshed on re-ingestion; every other column is only written on insert.
STAT_COLUMNS = ("population_density", "average_woz_value", "crime_rate", "last_updated")


class Neighborhood(Base, TimestampMixin):
    __tablename__ = "neighborhoods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    population_density: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_woz_value: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="EUR",
    )
    crime_rate: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Registered crimes per 1000 residents",
    )
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_neighborhoods_city", "city"),)
