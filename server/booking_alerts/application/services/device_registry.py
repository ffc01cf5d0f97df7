from __future__ import annotations

"""server/booking_alerts/application/services/device_registry.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Device Registry : adresses push des tablettes d'un restaurant.
`register` réactive une adresse désactivée après un "not registered".
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from booking_alerts.core.utils.datetime import as_utc, utcnow
from booking_alerts.infrastructure.persistence.database.models.device import RestaurantDevice
from booking_alerts.infrastructure.persistence.repositories.device_repository import DeviceRepository

logger = logging.getLogger(__name__)

PLATFORMS = ("ios", "android", "web")


def _uuid(v: Any) -> uuid.UUID:
    return v if isinstance(v, uuid.UUID) else uuid.UUID(str(v))


class DeviceRegistry:
    def __init__(self, session: Session):
        self.s = session
        self.repo = DeviceRepository(session)

    def list_enabled(self, restaurant_id: Any) -> list[RestaurantDevice]:
        return self.repo.list_enabled(_uuid(restaurant_id))

    def disable(self, push_address: str, *, restaurant_id: Any = None) -> int:
        """Pas de commit : le worker committe avec le reste de la décision."""
        n = self.repo.disable_address(
            push_address, restaurant_id=_uuid(restaurant_id) if restaurant_id is not None else None
        )
        if n:
            logger.warning("device disabled (address not registered)", extra={"push_address": push_address})
        return n

    def register(
        self,
        *,
        restaurant_id: Any,
        device_id: str,
        push_address: str,
        device_name: Optional[str] = None,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RestaurantDevice:
        if platform is not None and platform not in PLATFORMS:
            raise ValueError(f"invalid platform: {platform!r}")
        dev = self.repo.upsert(
            restaurant_id=_uuid(restaurant_id),
            device_id=device_id,
            push_address=push_address,
            device_name=device_name,
            platform=platform,
            app_version=app_version,
            now=now,
        )
        self.s.commit()
        logger.info(
            "device registered",
            extra={"restaurant_id": str(dev.restaurant_id), "device_id": device_id},
        )
        return dev

    def unregister(self, restaurant_id: Any, push_address: str) -> int:
        n = self.repo.disable_address(push_address, restaurant_id=_uuid(restaurant_id))
        self.s.commit()
        return n

    def heartbeat(self, restaurant_id: Any, push_address: str, *, now: Optional[datetime] = None) -> int:
        n = self.repo.touch(_uuid(restaurant_id), push_address, now=as_utc(now) if now else utcnow())
        self.s.commit()
        return n
