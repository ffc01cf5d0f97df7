from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/repeat_schedule.py
~~~~~~~~~~~~~~~~~~~~~~~~
Table alert_repeat_schedules : une ligne par chaîne de répétition (horloge mutable).
L'historique des pushs, lui, reste dans alert_intents (une ligne par push).
"""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import TstzPortable, UUIDPortable, utc_default

if TYPE_CHECKING:  # pragma: no cover
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import AlertIntent


class RepeatSchedule(Base):
    __tablename__ = "alert_repeat_schedules"
    __table_args__ = (
        sa.Index("ix_alert_repeat_schedules_live", "enabled", "repeat_until"),
        sa.Index("ix_alert_repeat_schedules_booking", "booking_id"),
        # une seule chaîne active par réservation
        sa.Index(
            "uq_alert_repeat_schedules_live_booking",
            "booking_id",
            unique=True,
            postgresql_where=sa.text("enabled"),
            sqlite_where=sa.text("enabled"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True, default=uuid.uuid4)
    intent_id: Mapped[uuid.UUID] = mapped_column(
        UUIDPortable(), sa.ForeignKey("alert_intents.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    restaurant_id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), nullable=False)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(UUIDPortable(), nullable=True)

    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    interval_seconds: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=30)
    repeat_until: Mapped[datetime] = mapped_column(TstzPortable(), nullable=False)
    last_repeat_at: Mapped[datetime | None] = mapped_column(TstzPortable(), nullable=True)
    repeat_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(TstzPortable(), nullable=False, default=utc_default)
    updated_at: Mapped[datetime] = mapped_column(
        TstzPortable(), nullable=False, default=utc_default, onupdate=utc_default,
    )

    intent: Mapped["AlertIntent"] = relationship("AlertIntent", back_populates="repeat_schedule")

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RepeatSchedule intent={self.intent_id} enabled={self.enabled} "
            f"until={self.repeat_until} count={self.repeat_count}>"
        )
