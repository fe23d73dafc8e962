"""
app/repositories/neighborhood_repository.py

Idempotent neighborhood upserts keyed by CBS code.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.domain.neighborhood import NeighborhoodUpsert, UpsertSummary
from db.models.neighborhood import STAT_COLUMNS, Neighborhood

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class NeighborhoodRepository:
    """
    Repository responsible for neighborhood rows.

    Existing codes only get their stat columns refreshed; name, type, city
    and coordinates are written once on insert.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_many(
        self,
        rows: Sequence[NeighborhoodUpsert],
        *,
        now: datetime | None = None,
    ) -> UpsertSummary:
        """
        Insert-or-update a batch in one statement. Does not commit.
        """

        if not rows:
            return UpsertSummary(inserted=0, updated=0)

        # Last write wins when a batch repeats a code.
        by_code = {row.code: row for row in rows}
        now = now or datetime.now(timezone.utc)
        existing = self.existing_codes(list(by_code))

        payloads: list[dict[str, Any]] = [
            {
                "code": row.code,
                "name": row.name,
                "city": row.city,
                "type": row.type,
                "latitude": row.latitude,
                "longitude": row.longitude,
                "population_density": row.population_density,
                "average_woz_value": row.average_woz_value,
                "crime_rate": row.crime_rate,
                "last_updated": now,
                "created_at": now,
                "updated_at": now,
            }
            for row in by_code.values()
        ]

        insert = self._insert_factory()
        stmt = insert(Neighborhood).values(payloads)
        refreshed = {column: stmt.excluded[column] for column in STAT_COLUMNS}
        refreshed["updated_at"] = stmt.excluded["updated_at"]
        stmt = stmt.on_conflict_do_update(index_elements=["code"], set_=refreshed)
        self._session.execute(stmt)

        updated = len(existing)
        return UpsertSummary(inserted=len(by_code) - updated, updated=updated)

    def existing_codes(self, codes: Sequence[str]) -> set[str]:
        if not codes:
            return set()
        stmt = select(Neighborhood.code).where(Neighborhood.code.in_(list(codes)))
        return set(self._session.scalars(stmt).all())

    def get_by_code(self, code: str) -> Neighborhood | None:
        return self._session.scalar(select(Neighborhood).where(Neighborhood.code == code))

    def list_by_city(self, city: str) -> list[Neighborhood]:
        stmt = select(Neighborhood).where(Neighborhood.city == city).order_by(Neighborhood.code.asc())
        return list(self._session.scalars(stmt).all())

    def _insert_factory(self):
        dialect = self._session.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError as exc:
            raise RuntimeError(f"Neighborhood upsert is not supported on dialect '{dialect}'.") from exc
