from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/notification_preferences.py
~~~~~~~~~~~~~~~~~~~~~~~~
Table restaurant_notification_preferences. Pas de ligne = on notifie tout.
"""
import uuid
import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import TstzPortable, UUIDPortable, utc_default


class NotificationPreferences(Base):
    __tablename__ = "restaurant_notification_preferences"

    restaurant_id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True)
    new_bookings: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    booking_cancellations: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    booking_modifications: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    updated_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default, onupdate=utc_default)
