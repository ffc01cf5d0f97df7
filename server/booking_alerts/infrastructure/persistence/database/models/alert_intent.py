from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import (
    JSONPortable,
    TstzPortable,
    UUIDPortable,
    utc_default,
)

if TYPE_CHECKING:  # pragma: no cover
    from booking_alerts.infrastructure.persistence.database.models.repeat_schedule import RepeatSchedule


class IntentStatus(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATUSES = (IntentStatus.SENT, IntentStatus.SKIPPED, IntentStatus.FAILED)


def StatusEnum():
    """
    Enum string portable (CHECK constraint), valeurs en minuscules comme en base.
    """
    return sa.Enum(
        IntentStatus,
        name="alert_intent_status",
        native_enum=False,
        values_callable=lambda e: [m.value for m in e],
        validate_strings=True,
    )


class AlertIntent(Base):
    """
    Une ligne = une intention de push (racine d'une chaîne ou enfant de répétition).
    L'historique est append-only : une répétition crée une nouvelle ligne enfant.
    """
    __tablename__ = "alert_intents"
    __table_args__ = (
        sa.Index("ix_alert_intents_queued", "status", "scheduled_for", "created_at"),
        sa.Index("ix_alert_intents_restaurant", "restaurant_id", "created_at"),
        sa.Index("ix_alert_intents_booking_kind", "booking_id", "kind"),
        sa.CheckConstraint("attempts <= max_attempts", name="ck_alert_intents_attempts"),
        sa.CheckConstraint("priority IN ('high', 'normal', 'low')", name="ck_alert_intents_priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True, default=uuid.uuid4)

    restaurant_id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), nullable=False)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        UUIDPortable(), sa.ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUIDPortable(), sa.ForeignKey("alert_intents.id", ondelete="SET NULL"), nullable=True
    )

    kind: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    title: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    body: Mapped[str] = mapped_column(sa.Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONPortable(), nullable=False, default=dict)
    sound: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="default")
    priority: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="high")

    status: Mapped[IntentStatus] = mapped_column(
        StatusEnum(), nullable=False, default=IntentStatus.QUEUED
    )
    attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=3)
    target_addresses: Mapped[list | None] = mapped_column(JSONPortable(), nullable=True)

    scheduled_for: Mapped[datetime] = mapped_column(TstzPortable(), nullable=False, default=utc_default)
    sent_at: Mapped[datetime | None] = mapped_column(TstzPortable(), nullable=True)
    error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    receipt_ids: Mapped[list | None] = mapped_column(JSONPortable(), nullable=True)

    # Bail de traitement : deux workers concurrents ne peuvent pas livrer la même ligne
    claim_token: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(TstzPortable(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TstzPortable(), nullable=False, default=utc_default)
    updated_at: Mapped[datetime] = mapped_column(
        TstzPortable(), nullable=False, default=utc_default, onupdate=utc_default,
    )

    repeat_schedule: Mapped[Optional["RepeatSchedule"]] = relationship(
        "RepeatSchedule", back_populates="intent", uselist=False, lazy="selectin",
    )

    # --- Vue "chaîne de répétition" (portée par le schedule de la racine) -----

    @property
    def repeat_enabled(self) -> bool:
        return bool(self.repeat_schedule is not None and self.repeat_schedule.enabled)

    @property
    def repeat_interval_seconds(self) -> int | None:
        return self.repeat_schedule.interval_seconds if self.repeat_schedule is not None else None

    @property
    def repeat_until(self) -> datetime | None:
        return self.repeat_schedule.repeat_until if self.repeat_schedule is not None else None

    @property
    def last_repeat_at(self) -> datetime | None:
        return self.repeat_schedule.last_repeat_at if self.repeat_schedule is not None else None

    @property
    def repeat_count(self) -> int:
        return self.repeat_schedule.repeat_count if self.repeat_schedule is not None else 0

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<AlertIntent id={self.id} kind={self.kind} status={self.status} "
            f"attempts={self.attempts}/{self.max_attempts}>"
        )
