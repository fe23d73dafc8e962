"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.batch_job import BatchJobRecord
from db.models.neighborhood import Neighborhood

__all__ = [
    "BatchJobRecord",
    "Neighborhood",
]
