"""
app/api/routers package marker.
"""

from app.api.routers.batch_jobs import router as batch_jobs_router
from app.api.routers.context_report import router as context_report_router

__all__ = [
    "batch_jobs_router",
    "context_report_router",
]
