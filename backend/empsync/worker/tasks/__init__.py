# Celery Tasks
from empsync.worker.tasks.sync import (
    run_employee_sync,
    rebuild_employee_timeline,
)
from empsync.worker.tasks.scheduled import (
    sync_all_employees,
    refresh_derived_view,
    expire_stale_sync_sessions,
)

__all__ = [
    "run_employee_sync",
    "rebuild_employee_timeline",
    # Scheduled Tasks (Celery Beat)
    "sync_all_employees",
    "refresh_derived_view",
    "expire_stale_sync_sessions",
]
