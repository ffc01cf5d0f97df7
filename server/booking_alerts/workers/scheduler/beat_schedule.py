from __future__ import annotations
"""server/booking_alerts/workers/scheduler/beat_schedule.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Planification périodique des tâches Celery (Beat).
"""

from booking_alerts.core.config import settings

beat_schedule = {
    "deliver-outbox": {
        "task": "outbox.deliver",
        "schedule": settings.DELIVERY_INTERVAL_SECONDS,
    },
}
