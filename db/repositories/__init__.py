"""
Repository layer exports.
"""

from db.repositories.batch_job_repository import BatchJobRepository

__all__ = [
    "BatchJobRepository",
]
