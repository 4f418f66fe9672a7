"""
empsync Celery Application
Celery worker configuration for sync runs and derived view maintenance
"""

from celery import Celery, signals
from celery.schedules import crontab
from kombu import Queue

from empsync.core.config import get_settings
from empsync.worker.tracing import setup_structured_logging

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "empsync_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="Europe/Amsterdam",
    enable_utc=True,

    # Task tracking
    task_track_started=True,
    task_acks_late=True,  # Acknowledge after task completion

    # Timeouts (a full company sync is long-running)
    task_time_limit=3600,
    task_soft_time_limit=3300,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result backend settings
    result_expires=86400,

    # Task queues
    task_queues=[
        Queue("high", routing_key="high"),
        Queue("default", routing_key="default"),
        Queue("low", routing_key="low"),
    ],
    task_default_queue="default",
    task_default_routing_key="default",
    task_routes={
        "run_employee_sync": {"queue": "high"},
        "rebuild_employee_timeline": {"queue": "low"},
    },

    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,

    # ===========================================
    # Celery Beat Schedule (Periodic Tasks)
    # ===========================================
    beat_schedule={
        # Full company sync - nightly at 02:00
        "sync-all-employees-nightly": {
            "task": "sync_all_employees",
            "schedule": crontab(minute=0, hour=2),
            "options": {"queue": "default"},
        },

        # Employment overview refresh - every hour at :20
        "refresh-employment-overview-hourly": {
            "task": "refresh_derived_view",
            "schedule": crontab(minute=20),
            "options": {"queue": "low"},
        },

        # Close sessions left running by a killed worker - daily at 04:00
        "expire-stale-sync-sessions-daily": {
            "task": "expire_stale_sync_sessions",
            "schedule": crontab(minute=0, hour=4),
            "args": (12,),  # hours
            "options": {"queue": "low"},
        },
    },
)

# Auto-discover tasks in the tasks module
celery_app.autodiscover_tasks(["empsync.worker.tasks"])


@signals.setup_logging.connect
def configure_worker_logging(**kwargs):
    """Structured logging instead of Celery's default handlers"""
    setup_structured_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
