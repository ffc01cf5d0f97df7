from __future__ import annotations
"""server/booking_alerts/infrastructure/persistence/database/models/device.py
~~~~~~~~~~~~~~~~~~~~~~~~
Table restaurant_devices : une adresse push par device physique et par restaurant.
"""
import uuid
import datetime as dt

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from booking_alerts.infrastructure.persistence.database.base import Base
from booking_alerts.infrastructure.persistence.database.types import TstzPortable, UUIDPortable, utc_default


class RestaurantDevice(Base):
    __tablename__ = "restaurant_devices"
    __table_args__ = (
        sa.UniqueConstraint("restaurant_id", "device_id", name="uq_restaurant_devices_restaurant_device"),
        sa.Index("ix_restaurant_devices_restaurant_enabled", "restaurant_id", "enabled"),
        sa.Index("ix_restaurant_devices_push_address", "push_address"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), primary_key=True, default=uuid.uuid4)
    restaurant_id: Mapped[uuid.UUID] = mapped_column(UUIDPortable(), nullable=False)
    device_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    push_address: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    device_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    platform: Mapped[str | None] = mapped_column(sa.String(16), nullable=True)
    app_version: Mapped[str | None] = mapped_column(sa.String(32), nullable=True)
    enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    last_seen: Mapped[dt.datetime | None] = mapped_column(TstzPortable(), nullable=True, default=utc_default)
    created_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default)
    updated_at: Mapped[dt.datetime] = mapped_column(TstzPortable(), default=utc_default, onupdate=utc_default)
