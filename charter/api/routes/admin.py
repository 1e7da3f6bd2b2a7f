"""
Admin / observability endpoints
===============================

GET /api/v1/admin/review-items -- open anomalies queued for manual review
GET /api/v1/admin/health       -- simple health check
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from charter.api.dependencies import get_db
from charter.api.middleware import limiter
from charter.api.schemas import HealthResponse, ReviewItemResponse
from charter.config import settings
from charter.infrastructure.repositories import ReviewRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/review-items",
    response_model=list[ReviewItemResponse],
    summary="List unresolved review items, newest first",
)
@limiter.limit(settings.rate_limit)
async def list_review_items(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await ReviewRepository(db).open_items(limit)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
