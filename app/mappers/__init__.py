"""
app/mappers package marker.
"""

from app.mappers.batch_job_mapper import UnknownJobStateError, to_domain, to_record, to_values

__all__ = [
    "UnknownJobStateError",
    "to_domain",
    "to_record",
    "to_values",
]
