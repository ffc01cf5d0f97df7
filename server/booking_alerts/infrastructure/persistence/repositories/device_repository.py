# server/booking_alerts/infrastructure/persistence/repositories/device_repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from booking_alerts.core.utils.datetime import as_utc, utcnow
from booking_alerts.infrastructure.persistence.database.models.device import RestaurantDevice


class DeviceRepository:
    """Adresses push par restaurant. Pas de commit ici."""

    def __init__(self, db: Session):
        self.db = db

    def list_enabled(self, restaurant_id: uuid.UUID) -> list[RestaurantDevice]:
        stmt = (
            select(RestaurantDevice)
            .where(
                RestaurantDevice.restaurant_id == restaurant_id,
                RestaurantDevice.enabled.is_(True),
            )
            .order_by(RestaurantDevice.created_at.asc())
        )
        return list(self.db.scalars(stmt))

    def get_by_device(self, restaurant_id: uuid.UUID, device_id: str) -> RestaurantDevice | None:
        stmt = select(RestaurantDevice).where(
            RestaurantDevice.restaurant_id == restaurant_id,
            RestaurantDevice.device_id == device_id,
        )
        return self.db.scalars(stmt).first()

    def upsert(
        self,
        *,
        restaurant_id: uuid.UUID,
        device_id: str,
        push_address: str,
        device_name: Optional[str] = None,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RestaurantDevice:
        """Insert ou mise à jour sur (restaurant_id, device_id). Réactive toujours l'adresse."""
        now = as_utc(now) if now else utcnow()
        dev = self.get_by_device(restaurant_id, device_id)
        if dev is None:
            dev = RestaurantDevice(
                id=uuid.uuid4(),
                restaurant_id=restaurant_id,
                device_id=device_id,
                created_at=now,
            )
            self.db.add(dev)
        dev.push_address = push_address
        dev.device_name = device_name
        dev.platform = platform
        dev.app_version = app_version
        dev.enabled = True
        dev.last_seen = now
        dev.updated_at = now
        self.db.flush()
        return dev

    def disable_address(self, push_address: str, *, restaurant_id: uuid.UUID | None = None) -> int:
        stmt = update(RestaurantDevice).where(
            RestaurantDevice.push_address == push_address,
            RestaurantDevice.enabled.is_(True),
        )
        if restaurant_id is not None:
            stmt = stmt.where(RestaurantDevice.restaurant_id == restaurant_id)
        res = self.db.execute(
            stmt.values(enabled=False, updated_at=utcnow()).execution_options(synchronize_session=False)
        )
        return res.rowcount or 0

    def touch(self, restaurant_id: uuid.UUID, push_address: str, *, now: datetime) -> int:
        res = self.db.execute(
            update(RestaurantDevice)
            .where(
                RestaurantDevice.restaurant_id == restaurant_id,
                RestaurantDevice.push_address == push_address,
            )
            .values(last_seen=as_utc(now), updated_at=as_utc(now))
            .execution_options(synchronize_session=False)
        )
        return res.rowcount or 0
