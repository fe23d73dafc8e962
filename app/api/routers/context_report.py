"""
app/api/routers/context_report.py

On-demand context report endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.domain.cancellation import CancellationToken
from app.domain.errors import ValidationFailure
from app.schemas.context_report import ContextReportRequest, ContextReportResponse
from app.services.context_report_service import ContextReportService, get_context_report_service

router = APIRouter(tags=["context"])


@router.post("/context/report", response_model=ContextReportResponse)
def build_context_report(
    request: ContextReportRequest,
    report_service: ContextReportService = Depends(get_context_report_service),
) -> ContextReportResponse:
    """
    Resolve the input to an address and return its enriched context report.
    """

    try:
        report = report_service.build(request.input, request.radius_meters, CancellationToken.none())
    except ValidationFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.messages,
        ) from exc

    return ContextReportResponse.from_domain(report)
