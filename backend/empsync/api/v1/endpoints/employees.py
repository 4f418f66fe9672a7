"""
empsync Employee Feed API Endpoints
Latest snapshots, change feed, timeline, compliance and salary history
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from empsync.core.config import Settings, get_settings
from empsync.core.database import get_db
from empsync.schemas.employee import (
    ComplianceResponse,
    SalaryHistoryResponse,
    SalaryPeriodResponse,
    TimelineEventResponse,
    TimelineResponse,
)
from empsync.schemas.snapshot import (
    ChangeFeedResponse,
    ChangeRecordResponse,
    LatestSnapshotsResponse,
    RawSnapshotResponse,
)
from empsync.services import feeds

router = APIRouter()
changes_router = APIRouter()


@router.get("/{employee_id}/snapshots/latest", response_model=LatestSnapshotsResponse)
async def get_latest_snapshots(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Latest raw payload per endpoint"""
    snapshots = await db.run_sync(feeds.latest_snapshots, employee_id)
    if not snapshots:
        raise HTTPException(status_code=404, detail=f"No snapshots for employee: {employee_id}")
    return LatestSnapshotsResponse(
        employee_id=employee_id,
        items=[RawSnapshotResponse.model_validate(s) for s in snapshots],
    )


@changes_router.get("", response_model=ChangeFeedResponse)
async def get_change_feed(
    employee_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
):
    """Non-duplicate changes in detection order"""
    if since and until and since >= until:
        raise HTTPException(status_code=400, detail="since must be before until")
    changes = await db.run_sync(feeds.change_feed, employee_id, since, until, limit)
    return ChangeFeedResponse(
        total=len(changes),
        items=[ChangeRecordResponse.model_validate(c) for c in changes],
    )


@router.get("/{employee_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
):
    entries = await db.run_sync(feeds.employee_timeline, employee_id)
    return TimelineResponse(
        employee_id=employee_id,
        total=len(entries),
        items=[TimelineEventResponse.model_validate(e) for e in entries],
    )


@router.get("/{employee_id}/compliance", response_model=ComplianceResponse)
async def get_compliance(
    employee_id: str,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Chain-rule status and termination notice as of `as_of` (default today)"""
    today = as_of or date.today()
    status = await db.run_sync(
        feeds.compliance_status, employee_id, today, settings.DEFAULT_HOURS_PER_WEEK
    )
    if status is None:
        raise HTTPException(status_code=404, detail=f"No employment data for employee: {employee_id}")
    return ComplianceResponse(
        employee_id=employee_id,
        evaluated_on=today,
        chain_rule_status=status.chain_rule_status.to_dict(),
        termination_notice=status.termination_notice.to_dict() if status.termination_notice else None,
    )


@router.get("/{employee_id}/salary-history", response_model=SalaryHistoryResponse)
async def get_salary_history(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Reconstructed wage periods, newest first"""
    periods = await db.run_sync(feeds.salary_history, employee_id, settings.DEFAULT_HOURS_PER_WEEK)
    return SalaryHistoryResponse(
        employee_id=employee_id,
        total=len(periods),
        items=[SalaryPeriodResponse.model_validate(p) for p in periods],
    )
