"""
empsync Sync Tasks
Batch sync and per-employee maintenance tasks
"""

import logging
from typing import Union
from uuid import UUID

from empsync.core.config import get_settings
from empsync.core.exceptions import StorageUnavailableError, TransientNetworkError
from empsync.services.employes_api import EmployesClient
from empsync.worker.celery_app import celery_app
from empsync.worker.db import get_sync_database
from empsync.worker.pipelines.sync_runner import ALL_EMPLOYEES, SyncRunner
from empsync.worker.pipelines.timeline import TimelineBuilder

logger = logging.getLogger(__name__)


def execute_sync(employee_ids: Union[str, list[str]], session_id: str = None, source_label: str = "manual") -> dict:
    """Run one batch with worker-process dependencies"""
    settings = get_settings()
    database = get_sync_database()

    with EmployesClient.from_settings(settings) as client:
        runner = SyncRunner.from_settings(settings, database, client)
        summary = runner.run(
            employee_ids,
            session_id=UUID(session_id) if session_id else None,
            source_label=source_label,
        )
    return summary.to_dict()


@celery_app.task(
    bind=True,
    name="run_employee_sync",
    max_retries=0,
)
def run_employee_sync(self, session_id: str, employee_ids: Union[str, list[str]] = ALL_EMPLOYEES):
    """
    Process a sync session created by the API.

    Not retried: a failed run leaves its session marked failed and the
    next trigger opens a fresh one.
    """
    target = ALL_EMPLOYEES if employee_ids == ALL_EMPLOYEES else list(employee_ids)
    count = "all" if target == ALL_EMPLOYEES else len(target)
    logger.info(f"Starting sync session {session_id} ({count} employees, task={self.request.id})")

    try:
        result = execute_sync(target, session_id=session_id)
    except (StorageUnavailableError, TransientNetworkError) as e:
        logger.error(f"Sync session {session_id} aborted: {e.message}")
        raise

    logger.info(
        f"Sync session {session_id} finished {result['status']}: "
        f"{result['successful_records']}/{result['total_records']} ok"
    )
    return result


@celery_app.task(
    bind=True,
    name="rebuild_employee_timeline",
    autoretry_for=(StorageUnavailableError,),
    retry_kwargs={"max_retries": 3, "countdown": 60},
    retry_backoff=True,
    retry_backoff_max=300,
)
def rebuild_employee_timeline(self, employee_id: str):
    """Full rebuild of one employee's stored timeline from snapshot history"""
    logger.info(f"Rebuilding timeline for employee {employee_id}")
    events = TimelineBuilder(get_sync_database()).rebuild(employee_id)
    logger.info(f"Timeline for {employee_id} rebuilt: {len(events)} events")
    return {"employee_id": employee_id, "events": len(events)}
