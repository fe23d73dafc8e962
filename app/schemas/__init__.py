"""
app/schemas package marker.
"""

from app.schemas.batch_jobs import (
    BatchJobCreateRequest,
    BatchJobDetailResponse,
    BatchJobPageResponse,
    BatchJobSummaryResponse,
)
from app.schemas.context_report import ContextReportRequest, ContextReportResponse

__all__ = [
    "BatchJobCreateRequest",
    "BatchJobDetailResponse",
    "BatchJobPageResponse",
    "BatchJobSummaryResponse",
    "ContextReportRequest",
    "ContextReportResponse",
]
