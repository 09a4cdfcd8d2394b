"""Celery application configuration.

Only used with ``SCHEDULER_MODE=celery``: instead of the in-process loops,
Celery beat drives the scheduler.

This module sets up the Celery app with:
- Redis as broker and result backend
- Task routing to the scheduling queue
- Serialization and timezone settings
- Beat schedule for reconciliation and due-job dispatch
"""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "autoflow",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "worker.tasks.scheduling.*": {"queue": "scheduling"},
    },

    # Default queue
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=300,   # 5 min soft limit (raises SoftTimeLimitExceeded)
    task_time_limit=600,        # 10 min hard limit (kills the task)
    task_acks_late=True,        # Acknowledge after execution (safer)
    worker_prefetch_multiplier=1,  # One task at a time per worker process

    # Retry
    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "reconcile-schedules": {
            "task": "worker.tasks.scheduling.reconcile_schedules",
            "schedule": crontab(minute="*/5"),  # Every 5 minutes
            "options": {"queue": "scheduling"},
        },
        "dispatch-due-jobs": {
            "task": "worker.tasks.scheduling.dispatch_due_jobs",
            "schedule": crontab(minute="*/1"),  # Every minute
            "options": {"queue": "scheduling"},
        },
    },

    # Auto-discover task modules
    include=[
        "worker.tasks.scheduling",
    ],
)
