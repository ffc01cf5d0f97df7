from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/delivery_log.py
~~~~~~~~~~~~~~~~~~~~~~~~
Table alert_delivery_logs : une ligne par tentative (intent, device). Append-only.
"""
import uuid
import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import JSONPortable, TstzPortable, UUIDPortable, utc_default


class DeliveryLogEntry(Base):
    __tablename__ = "alert_delivery_logs"
    __table_args__ = (
        sa.Index("ix_alert_delivery_logs_intent", "intent_id"),
        sa.CheckConstraint("status IN ('ok', 'error')", name="ck_alert_delivery_logs_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True, default=uuid.uuid4)
    intent_id: Mapped[uuid.UUID] = mapped_column(
        UUIDPortable(), sa.ForeignKey("alert_intents.id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[uuid.UUID | None] = mapped_column(
        UUIDPortable(), sa.ForeignKey("restaurant_devices.id", ondelete="SET NULL"), nullable=True
    )
    push_address: Mapped[str] = mapped_column(sa.String(255))
    status: Mapped[str] = mapped_column(sa.String(16))
    provider_receipt_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    raw_response: Mapped[dict | None] = mapped_column(JSONPortable(), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default)
