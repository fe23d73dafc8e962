"""
app/domain package marker.
"""

from app.domain.batch_job import (
    BatchJob,
    BatchJobStatus,
    BatchJobSummary,
    BatchJobType,
    CompletedJob,
    FailedJob,
    PendingJob,
    ProcessingJob,
)
from app.domain.cancellation import CancellationToken
from app.domain.context_report import (
    CategoryBuildResult,
    ContextMetric,
    ContextReport,
    ResolvedLocation,
    SourceAttribution,
)
from app.domain.errors import (
    ConflictError,
    ContextServiceError,
    NotFoundError,
    OperationCancelledError,
    ProcessorFailure,
    SourceUnavailableError,
    ValidationFailure,
)
from app.domain.neighborhood import NeighborhoodGeometry, NeighborhoodUpsert, UpsertSummary
from app.domain.pagination import PaginatedList

__all__ = [
    "BatchJob",
    "BatchJobStatus",
    "BatchJobSummary",
    "BatchJobType",
    "CancellationToken",
    "CategoryBuildResult",
    "CompletedJob",
    "ConflictError",
    "ContextMetric",
    "ContextReport",
    "ContextServiceError",
    "FailedJob",
    "NeighborhoodGeometry",
    "NeighborhoodUpsert",
    "NotFoundError",
    "OperationCancelledError",
    "PaginatedList",
    "PendingJob",
    "ProcessingJob",
    "ProcessorFailure",
    "ResolvedLocation",
    "SourceAttribution",
    "SourceUnavailableError",
    "UpsertSummary",
    "ValidationFailure",
]
