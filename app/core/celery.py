"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "invoice_lifecycle",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.invoices.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Asuncion",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,  # 1 hour

    task_routes={
        "app.modules.invoices.tasks.*": {"queue": "invoices"},
    },

    # Beat schedule for periodic tasks
    beat_schedule={
        "mark-overdue-invoices": {
            "task": "app.modules.invoices.tasks.mark_overdue_invoices",
            "schedule": 3600.0,  # Run every hour
        },
        "release-stale-approvals": {
            "task": "app.modules.invoices.tasks.release_stale_approvals",
            "schedule": 60.0,  # Run every minute
        }
    }
)

if __name__ == "__main__":
    celery_app.start()
