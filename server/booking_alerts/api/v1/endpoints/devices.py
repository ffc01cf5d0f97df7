from __future__ import annotations
"""
server/booking_alerts/api/v1/endpoints/devices.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Enregistrement des tablettes :
- POST   /devices            : upsert sur (restaurant_id, device_id), réactive l'adresse
- DELETE /devices            : désactive une adresse
- POST   /devices/heartbeat  : met à jour last_seen
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from booking_alerts.api.schemas.device import DeviceAddressIn, DeviceRegisterIn
from booking_alerts.application.services.device_registry import DeviceRegistry
from booking_alerts.infrastructure.persistence.database.session import get_db

router = APIRouter(prefix="/devices")


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_device(payload: DeviceRegisterIn, db: Session = Depends(get_db)) -> dict:
    dev = DeviceRegistry(db).register(
        restaurant_id=payload.restaurant_id,
        device_id=payload.device_id,
        push_address=payload.push_address,
        device_name=payload.device_name,
        platform=payload.platform.value if payload.platform else None,
        app_version=payload.app_version,
    )
    return {
        "id": str(dev.id),
        "restaurant_id": str(dev.restaurant_id),
        "device_id": dev.device_id,
        "enabled": dev.enabled,
    }


@router.delete("")
async def unregister_device(payload: DeviceAddressIn, db: Session = Depends(get_db)) -> dict:
    n = DeviceRegistry(db).unregister(payload.restaurant_id, payload.push_address)
    if not n:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="device_not_found")
    return {"disabled": n}


@router.post("/heartbeat")
async def device_heartbeat(payload: DeviceAddressIn, db: Session = Depends(get_db)) -> dict:
    n = DeviceRegistry(db).heartbeat(payload.restaurant_id, payload.push_address)
    if not n:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="device_not_found")
    return {"status": "ok"}
