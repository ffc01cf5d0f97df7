# server/booking_alerts/infrastructure/persistence/repositories/booking_repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_alerts.core.utils.datetime import as_utc
from booking_alerts.infrastructure.persistence.database.models.booking import Booking
from booking_alerts.infrastructure.persistence.database.models.notification_preferences import (
    NotificationPreferences,
)


class BookingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: uuid.UUID) -> Booking | None:
        return self.db.get(Booking, booking_id)

    def add(self, booking: Booking) -> Booking:
        self.db.add(booking)
        self.db.flush()
        return booking

    def list_by_status(
        self,
        restaurant_id: uuid.UUID,
        status: str,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[Booking]:
        stmt = select(Booking).where(
            Booking.restaurant_id == restaurant_id,
            Booking.status == status,
        )
        if date_from is not None:
            stmt = stmt.where(Booking.booking_time >= as_utc(date_from))
        if date_to is not None:
            stmt = stmt.where(Booking.booking_time < as_utc(date_to))
        stmt = stmt.order_by(Booking.booking_time.asc(), Booking.created_at.asc())
        return list(self.db.scalars(stmt))

    def preferences(self, restaurant_id: uuid.UUID) -> NotificationPreferences | None:
        return self.db.get(NotificationPreferences, restaurant_id)
