"""
app/services package marker.
"""

from app.services.batch_job_executor import (
    BatchJobExecutor,
    JobOutcome,
    JobProcessor,
    JobProgressTracker,
    get_batch_job_executor,
)
from app.services.batch_job_service import BatchJobService, get_batch_job_service
from app.services.context_report_service import ContextReportService, get_context_report_service

__all__ = [
    "BatchJobExecutor",
    "BatchJobService",
    "ContextReportService",
    "JobOutcome",
    "JobProcessor",
    "JobProgressTracker",
    "get_batch_job_executor",
    "get_batch_job_service",
    "get_context_report_service",
]
