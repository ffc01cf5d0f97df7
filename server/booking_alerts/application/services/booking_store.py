from __future__ import annotations

"""server/booking_alerts/application/services/booking_store.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Booking Store : lecture/écriture des réservations.

Chaque écriture :
  1. modifie la réservation,
  2. appelle l'Outbox Enqueuer dans la même transaction,
  3. commit,
  4. publie l'événement sur le change feed (fire-and-forget).
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from booking_alerts.core.utils.datetime import as_utc, utcnow
from booking_alerts.domain.errors import BookingNotFoundError, InvalidTransitionError
from booking_alerts.domain.policies import PENDING, BookingSnapshot, normalize_status
from booking_alerts.application.services import outbox_enqueuer
from booking_alerts.infrastructure.messaging.change_feed import publish_booking_change
from booking_alerts.infrastructure.messaging.events import BookingChanged
from booking_alerts.infrastructure.persistence.database.models.booking import Booking
from booking_alerts.infrastructure.persistence.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)


def _as_uuid(v: Any) -> uuid.UUID:
    if isinstance(v, uuid.UUID):
        return v
    try:
        return uuid.UUID(str(v))
    except (TypeError, ValueError):
        raise BookingNotFoundError(v)


class BookingStore:
    def __init__(self, session: Session):
        self.s = session
        self.repo = BookingRepository(session)

    # --- Lecture -------------------------------------------------------------

    def _get_or_raise(self, booking_id: Any) -> Booking:
        booking = self.repo.get(_as_uuid(booking_id))
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def get(self, booking_id: Any) -> Booking:
        return self._get_or_raise(booking_id)

    def get_status(self, booking_id: Any) -> str:
        return self._get_or_raise(booking_id).status

    def list_by_status(
        self,
        restaurant_id: Any,
        status: str,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[Booking]:
        return self.repo.list_by_status(
            _as_uuid(restaurant_id), normalize_status(status), date_from=date_from, date_to=date_to
        )

    # --- Écriture ------------------------------------------------------------

    def record_booking(
        self,
        *,
        restaurant_id: Any,
        guest_name: Optional[str] = None,
        party_size: Optional[int] = None,
        booking_time: Optional[datetime] = None,
        status: str = PENDING,
        note: Optional[str] = None,
        booking_id: Any = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = as_utc(now) if now else utcnow()
        booking = Booking(
            id=_as_uuid(booking_id) if booking_id is not None else uuid.uuid4(),
            restaurant_id=_as_uuid(restaurant_id),
            status=normalize_status(status),
            guest_name=guest_name,
            party_size=party_size,
            booking_time=as_utc(booking_time),
            note=note,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(booking)
        self._commit_change(None, booking, now=now, event="INSERT")
        return booking

    def update_status(
        self,
        booking_id: Any,
        new_status: str,
        *,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        new_status = normalize_status(new_status)
        now = as_utc(now) if now else utcnow()
        booking = self._get_or_raise(booking_id)
        before = BookingSnapshot.from_row(booking)

        booking.status = new_status
        if note is not None:
            booking.note = note
        booking.updated_at = now
        self.s.flush()

        self._commit_change(before, booking, now=now)
        return booking

    def update_details(
        self,
        booking_id: Any,
        *,
        guest_name: Optional[str] = None,
        party_size: Optional[int] = None,
        booking_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        if party_size is not None and party_size < 1:
            raise InvalidTransitionError(f"invalid party_size: {party_size}")
        now = as_utc(now) if now else utcnow()
        booking = self._get_or_raise(booking_id)
        before = BookingSnapshot.from_row(booking)

        if guest_name is not None:
            booking.guest_name = guest_name
        if party_size is not None:
            booking.party_size = party_size
        if booking_time is not None:
            booking.booking_time = as_utc(booking_time)
        booking.updated_at = now
        self.s.flush()

        self._commit_change(before, booking, now=now)
        return booking

    def _commit_change(
        self, before: Optional[BookingSnapshot], booking: Booking, *, now: datetime, event: str = "UPDATE"
    ) -> None:
        after = BookingSnapshot.from_row(booking)
        try:
            outbox_enqueuer.on_booking_change(self.s, before, after, now=now)
            self.s.commit()
        except Exception:
            self.s.rollback()
            raise

        publish_booking_change(
            BookingChanged(
                booking_id=str(after.id),
                restaurant_id=str(after.restaurant_id),
                status=after.status,
                old_status=before.status if before else None,
                occurred_at=now.isoformat(),
                event=event,
            )
        )
