from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/__init__.py
~~~~~~~~~~~~~~~~~~~~~~~~
Modèles ORM (register for Alembic).
"""

from .booking import Booking
from .device import RestaurantDevice
from .notification_preferences import NotificationPreferences
from .alert_intent import AlertIntent, IntentStatus
from .repeat_schedule import RepeatSchedule
from .delivery_log import DeliveryLogEntry

__all__ = [
    "Booking",
    "RestaurantDevice",
    "NotificationPreferences",
    "AlertIntent",
    "IntentStatus",
    "RepeatSchedule",
    "DeliveryLogEntry",
]
