"""
app/repositories package marker.
"""

from app.repositories.neighborhood_repository import NeighborhoodRepository

__all__ = [
    "NeighborhoodRepository",
]
