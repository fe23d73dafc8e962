"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Query, status

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageParams:
    page: int
    page_size: int


def get_page_params(
    page: int = Query(default=1, description="1-based page number"),
    page_size: int = Query(default=20, description=f"Items per page, 1-{MAX_PAGE_SIZE}"),
) -> PageParams:
    """
    Reject out-of-range paging instead of silently clamping it.
    """

    if page < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="page must be 1 or greater.",
        )
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"page_size must be between 1 and {MAX_PAGE_SIZE}.",
        )
    return PageParams(page=page, page_size=page_size)
