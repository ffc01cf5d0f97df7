from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/booking.py
~~~~~~~~~~~~~~~~~~~~~~~~
Table bookings (vue minimale du Booking Store : id, statut, champs affichés dans l'alerte).
"""
import uuid
import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import TstzPortable, UUIDPortable, utc_default


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        sa.Index("ix_bookings_restaurant_status", "restaurant_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True, default=uuid.uuid4)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="pending")
    guest_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    party_size: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    booking_time: Mapped[dt.datetime | None] = mapped_column(TstzPortable(), nullable=True)
    note: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default)
    updated_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default, onupdate=utc_default)
