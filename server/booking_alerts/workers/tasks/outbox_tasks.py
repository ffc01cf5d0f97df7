# server/booking_alerts/workers/tasks/outbox_tasks.py
from __future__ import annotations
"""
Tâche Celery `outbox.deliver` : une passe du Delivery Worker.
Planifiée par Beat (DELIVERY_INTERVAL_SECONDS) et déclenchable via l'API.
"""
from typing import Optional

from celery.utils.log import get_task_logger

from booking_alerts.workers.celery_app import celery
from booking_alerts.application.services.delivery_service import run_delivery_pass

logger = get_task_logger(__name__)


@celery.task(name="outbox.deliver")
def deliver_outbox(limit: Optional[int] = None) -> dict:
    report = run_delivery_pass(limit=limit)
    if report.failed or report.lost_races:
        logger.warning("outbox.deliver: %s", report.as_dict())
    return report.as_dict()
