"""
empsync Sync API Endpoints
Sync trigger, session bookkeeping and sync health
"""

import logging
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from empsync.core.config import Settings, get_settings
from empsync.core.database import get_db
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.schemas.sync import (
    SyncHealthResponse,
    SyncRunRequest,
    SyncRunResponse,
    SyncSessionListResponse,
    SyncSessionSummary,
)
from empsync.services import feeds

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run", response_model=SyncRunResponse, status_code=202)
async def trigger_sync(
    request: SyncRunRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Open a sync session and queue the batch.

    The session row is created here so the caller gets its id and counts
    straight away; the worker fills in the rest.
    """
    explicit = [] if request.employee_ids == "all" else request.employee_ids
    session = SyncSession(
        source_label=request.source_label,
        status=SyncStatus.RUNNING,
        started_at=datetime.now(UTC),
        total_records=len(explicit),
        successful_records=0,
        failed_records=0,
        sync_details={"errors": [], "requested": request.employee_ids if explicit else "all"},
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)

    # Broker unreachable: close the session as failed
    try:
        from empsync.worker.tasks.sync import run_employee_sync
        task = run_employee_sync.delay(str(session.id), request.employee_ids)
    except Exception as e:
        logger.error(f"Sync dispatch failed for session {session.id}: {e}")
        session.status = SyncStatus.FAILED
        session.completed_at = datetime.now(UTC)
        session.sync_details = {
            **(session.sync_details or {}),
            "failure": {"error": "DispatchFailed", "message": str(e)[:200]},
        }
        await db.commit()
        await db.refresh(session)
        return SyncRunResponse(
            session=SyncSessionSummary.from_session(session),
            message=f"Worker dispatch failed: {str(e)[:100]}",
        )

    logger.info(f"Sync task dispatched: task_id={task.id}, session_id={session.id}")
    target = "all employees" if not explicit else f"{len(explicit)} employees"
    return SyncRunResponse(
        session=SyncSessionSummary.from_session(session),
        task_id=str(task.id),
        message=f"Sync queued for {target}",
    )


@router.get("/sessions", response_model=SyncSessionListResponse)
async def list_sessions(
    status: Optional[SyncStatus] = None,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
):
    """Recent sync sessions, newest first"""
    sessions = await db.run_sync(feeds.list_sync_sessions, status, min(max(limit, 1), 500))
    return SyncSessionListResponse(
        total=len(sessions),
        items=[SyncSessionSummary.from_session(s) for s in sessions],
    )


@router.get("/sessions/{session_id}", response_model=SyncSessionSummary)
async def get_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    session = await db.run_sync(feeds.get_sync_session, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Sync session not found")
    return SyncSessionSummary.from_session(session)


@router.post("/sessions/{session_id}/cancel", response_model=SyncSessionSummary)
async def cancel_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """
    Mark a running session cancelled.

    The worker notices on its next recorded employee and stops.
    """
    session = await db.run_sync(feeds.get_sync_session, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Sync session not found")
    if session.status != SyncStatus.RUNNING:
        raise HTTPException(
            status_code=409,
            detail=f"Sync session is already {SyncStatus(session.status).value}",
        )

    session.status = SyncStatus.CANCELLED
    session.completed_at = datetime.now(UTC)
    session.sync_details = {**(session.sync_details or {}), "cancelled": True}
    await db.commit()
    await db.refresh(session)
    logger.info(f"Sync session {session_id} cancelled via API")
    return SyncSessionSummary.from_session(session)


@router.get("/health", response_model=SyncHealthResponse)
async def sync_health(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Freshness and completeness of synced data plus recent run outcomes"""
    health = await db.run_sync(feeds.sync_health, settings.sync_endpoints, settings.FRESHNESS_HOURS)
    last = health.pop("last_session")
    return SyncHealthResponse(
        **health,
        last_session=SyncSessionSummary.from_session(last) if last is not None else None,
    )
