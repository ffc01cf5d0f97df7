from __future__ import annotations
"""booking_alerts/workers/celery_app.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Celery app + routage + auto-import des modules de tâches + beat schedule.
"""
from celery import Celery

from booking_alerts.core.config import settings
from booking_alerts.workers.scheduler.beat_schedule import beat_schedule

celery = Celery("booking_alerts", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

# Routage par files
celery.conf.task_routes = {
    "outbox.deliver": {"queue": "outbox"},
}

# Une passe ne doit jamais en chevaucher une autre sur le même worker
celery.conf.worker_prefetch_multiplier = 1
celery.conf.task_acks_late = True

celery.conf.update(
    imports=[
        "booking_alerts.workers.tasks.outbox_tasks",
    ],
)

celery.conf.beat_schedule = beat_schedule
