"""
Read Feeds
Query functions behind the read API

Every function takes a synchronous SQLAlchemy Session so the same code
serves the async API (through AsyncSession.run_sync) and worker code.
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta, UTC
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from empsync.core.dates import as_utc
from empsync.models.change import ChangeRecord
from empsync.models.overview import EmploymentOverview
from empsync.models.snapshot import RawSnapshot
from empsync.models.sync_session import SyncSession, SyncStatus
from empsync.schemas.payloads import ENDPOINT_EMPLOYMENTS
from empsync.worker.pipelines.compliance import ComplianceEngine, ComplianceStatus
from empsync.worker.pipelines.contracts import DEFAULT_HOURS_PER_WEEK, contract_periods_from_payload
from empsync.worker.pipelines.salary import SalaryPeriod, reconstruct_salary_history
from empsync.worker.pipelines.snapshot import latest_snapshots_for_employee
from empsync.worker.pipelines.timeline import TimelineEntry, load_timeline

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 500
RECENT_SESSION_WINDOW = 20


# =============================================================================
# Snapshots & changes
# =============================================================================

def latest_snapshots(db: Session, employee_id: str) -> list[RawSnapshot]:
    snapshots = latest_snapshots_for_employee(db, employee_id)
    return [snapshots[endpoint] for endpoint in sorted(snapshots)]


def change_feed(
    db: Session,
    employee_id: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = DEFAULT_FEED_LIMIT,
) -> list[ChangeRecord]:
    """Non-duplicate change records, oldest first; `since` inclusive, `until` exclusive"""
    query = select(ChangeRecord).where(ChangeRecord.is_duplicate.is_(False))
    if employee_id is not None:
        query = query.where(ChangeRecord.employee_id == employee_id)
    if since is not None:
        query = query.where(ChangeRecord.detected_at >= since)
    if until is not None:
        query = query.where(ChangeRecord.detected_at < until)

    query = query.order_by(
        ChangeRecord.detected_at,
        ChangeRecord.employee_id,
        ChangeRecord.endpoint,
        ChangeRecord.field_name,
    ).limit(limit)
    return list(db.execute(query).scalars().all())


def employment_overview(db: Session, limit: int = DEFAULT_FEED_LIMIT) -> list[EmploymentOverview]:
    """Rows of the derived view as of its last refresh, most recently collected first"""
    query = (
        select(EmploymentOverview)
        .order_by(EmploymentOverview.last_collected_at.desc(), EmploymentOverview.employee_id)
        .limit(limit)
    )
    return list(db.execute(query).scalars().all())


# =============================================================================
# Derived per-employee feeds
# =============================================================================

def employee_timeline(db: Session, employee_id: str) -> list[TimelineEntry]:
    return load_timeline(db, employee_id)


def compliance_status(
    db: Session,
    employee_id: str,
    today: Optional[date] = None,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
    engine: Optional[ComplianceEngine] = None,
) -> Optional[ComplianceStatus]:
    """None when the employee has no /employments snapshot yet"""
    snapshot = latest_snapshots_for_employee(db, employee_id).get(ENDPOINT_EMPLOYMENTS)
    if snapshot is None:
        return None

    contracts = contract_periods_from_payload(employee_id, snapshot.payload, default_hours_per_week)
    engine = engine or ComplianceEngine()
    return engine.evaluate(contracts, today or date.today())


def salary_history(
    db: Session,
    employee_id: str,
    default_hours_per_week: float = DEFAULT_HOURS_PER_WEEK,
) -> list[SalaryPeriod]:
    return reconstruct_salary_history(db, employee_id, default_hours_per_week)


# =============================================================================
# Sync sessions & health
# =============================================================================

def list_sync_sessions(
    db: Session,
    status: Optional[SyncStatus] = None,
    limit: int = 50,
) -> list[SyncSession]:
    query = select(SyncSession)
    if status is not None:
        query = query.where(SyncSession.status == status)
    query = query.order_by(SyncSession.started_at.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def get_sync_session(db: Session, session_id: UUID) -> Optional[SyncSession]:
    return db.get(SyncSession, session_id)


def sync_health(
    db: Session,
    endpoints: list[str],
    freshness_hours: int = 24,
    now: Optional[datetime] = None,
) -> dict:
    """
    Health summary of the sync engine.

    - healthy: last run completed without errors and every known employee
      has every endpoint collected within the freshness window
    - degraded: data is stale/incomplete or the last run had errors
    - unhealthy: the last run failed or nothing has been collected yet
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(hours=freshness_hours)

    sessions = list_sync_sessions(db, limit=RECENT_SESSION_WINDOW)
    status_counts = Counter(SyncStatus(s.status).value for s in sessions)
    last = sessions[0] if sessions else None

    rows = db.execute(
        select(RawSnapshot.employee_id, RawSnapshot.endpoint, RawSnapshot.collected_at)
        .where(RawSnapshot.is_latest.is_(True))
    ).all()

    per_employee: dict[str, dict[str, datetime]] = {}
    for employee_id, endpoint, collected_at in rows:
        per_employee.setdefault(employee_id, {})[endpoint] = as_utc(collected_at)

    required = set(endpoints)
    complete = [e for e, seen in per_employee.items() if required <= set(seen)]
    fresh = [e for e in complete if min(per_employee[e].values()) >= cutoff]
    total = len(per_employee)

    last_collected = max((c for seen in per_employee.values() for c in seen.values()), default=None)
    change_count = db.execute(
        select(func.count(ChangeRecord.id)).where(ChangeRecord.is_duplicate.is_(False))
    ).scalar_one()

    if total == 0 or (last is not None and last.status == SyncStatus.FAILED):
        status = "unhealthy"
    elif len(fresh) < total or (last is not None and last.status == SyncStatus.COMPLETED_WITH_ERRORS):
        status = "degraded"
    else:
        status = "healthy"

    logger.debug(f"Sync health {status}: {len(fresh)}/{total} employees fresh")
    return {
        "status": status,
        "checked_at": now,
        "freshness_hours": freshness_hours,
        "employees_known": total,
        "employees_complete": len(complete),
        "employees_fresh": len(fresh),
        "fresh_percent": round(len(fresh) / total * 100, 1) if total else 0.0,
        "last_collected_at": last_collected,
        "change_count": int(change_count),
        "last_session": last,
        "recent_session_counts": dict(status_counts),
    }
