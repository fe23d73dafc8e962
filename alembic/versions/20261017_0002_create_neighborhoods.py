"""create neighborhoods table

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 09:05:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "neighborhoods",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("population_density", sa.Float(), nullable=True),
        sa.Column("average_woz_value", sa.Float(), nullable=True, comment="EUR"),
        sa.Column(
            "crime_rate",
            sa.Float(),
            nullable=True,
            comment="Registered crimes per 1000 residents",
        ),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_neighborhoods_code"),
    )
    op.create_index("ix_neighborhoods_city", "neighborhoods", ["city"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_neighborhoods_city", table_name="neighborhoods")
    op.drop_table("neighborhoods")
