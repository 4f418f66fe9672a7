"""
empsync Scheduled Tasks
Periodic tasks triggered by Celery Beat
"""

import logging
from datetime import timedelta

from empsync.core.exceptions import ViewRefreshError
from empsync.services.view_refresh import get_view_refresher
from empsync.worker.celery_app import celery_app
from empsync.worker.db import get_sync_database
from empsync.worker.pipelines.sync_runner import ALL_EMPLOYEES
from empsync.worker.pipelines.sync_session import SyncSessionTracker
from empsync.worker.tasks.sync import execute_sync

logger = logging.getLogger(__name__)


@celery_app.task(name="sync_all_employees")
def sync_all_employees():
    """
    Nightly full company sync.

    Opens its own session labelled "scheduled"; the employee list comes
    from the provider. The derived view is refreshed afterwards.
    """
    logger.info("Starting scheduled sync of all employees")

    try:
        result = execute_sync(ALL_EMPLOYEES, source_label="scheduled")
    except Exception as e:
        logger.error(f"Scheduled sync failed: {str(e)}")
        raise

    logger.info(
        f"Scheduled sync {result['session_id']} {result['status']}: "
        f"{result['successful_records']} ok, {result['failed_records']} failed"
    )
    refresh_derived_view.delay()
    return result


@celery_app.task(
    name="refresh_derived_view",
    autoretry_for=(ViewRefreshError,),
    retry_kwargs={"max_retries": 3, "countdown": 60},
    retry_backoff=True,
    retry_backoff_max=300,
)
def refresh_derived_view():
    """Refresh the employment overview read model"""
    result = get_view_refresher().refresh()
    logger.info(f"Refreshed {result.view_name}: {result.row_count} rows in {result.elapsed_ms}ms")
    return {
        "view_name": result.view_name,
        "method": result.method,
        "row_count": result.row_count,
        "refreshed_at": result.refreshed_at.isoformat(),
        "coalesced": result.coalesced,
    }


@celery_app.task(name="expire_stale_sync_sessions")
def expire_stale_sync_sessions(hours: int = 12):
    """Mark sessions still running after `hours` as failed"""
    tracker = SyncSessionTracker(get_sync_database())
    expired = tracker.expire_stale(timedelta(hours=hours))

    if expired:
        logger.warning(f"Expired {len(expired)} stale sync sessions")
    else:
        logger.debug("No stale sync sessions")

    return {
        "status": "success",
        "expired": [str(session_id) for session_id in expired],
        "max_age_hours": hours,
    }
