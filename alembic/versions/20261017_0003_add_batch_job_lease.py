"""add lease token and heartbeat to batch_jobs

Revision ID: 20261017_0003
Revises: 20261017_0002
Create Date: 2026-10-17 15:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_0003"
down_revision = "20261017_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("batch_jobs", sa.Column("lease_id", sa.Uuid(as_uuid=True), nullable=True))
    op.add_column("batch_jobs", sa.Column("heartbeat_at", sa.DateTime(timezone=True), nullable=True))
    op.execute(
        "UPDATE batch_jobs SET heartbeat_at = started_at WHERE status = 'Processing'"
    )


def downgrade() -> None:
    op.drop_column("batch_jobs", "heartbeat_at")
    op.drop_column("batch_jobs", "lease_id")
