"""
empsync Derived View API Endpoints
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from empsync.core.database import get_db
from empsync.core.exceptions import ViewRefreshError
from empsync.schemas.view import EmploymentOverviewResponse, EmploymentOverviewRow, ViewRefreshResponse
from empsync.services import feeds
from empsync.services.view_refresh import DerivedViewRefresher, get_view_refresher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/refresh", response_model=ViewRefreshResponse)
async def refresh_view(refresher: DerivedViewRefresher = Depends(get_view_refresher)):
    """
    Refresh the employment overview.

    Requests arriving while a refresh runs wait for it and share its result.
    """
    try:
        result = await run_in_threadpool(refresher.refresh)
    except ViewRefreshError as e:
        logger.error(f"View refresh failed: {e.message}")
        raise HTTPException(status_code=503, detail=e.to_dict())
    return ViewRefreshResponse.model_validate(result)


@router.get("/employment-overview", response_model=EmploymentOverviewResponse)
async def get_employment_overview(
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee collection summary as of the last refresh"""
    rows = await db.run_sync(feeds.employment_overview, limit)
    return EmploymentOverviewResponse(
        total=len(rows),
        items=[EmploymentOverviewRow.model_validate(r) for r in rows],
    )
