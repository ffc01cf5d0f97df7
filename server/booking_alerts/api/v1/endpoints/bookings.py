from __future__ import annotations
"""
server/booking_alerts/api/v1/endpoints/bookings.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Surface HTTP du Booking Store (utilisée par les tablettes) :
- GET  /bookings?restaurant_id=&status=&date_from=&date_to=
- GET  /bookings/{id}/status
- POST /bookings/{id}/status  → écrit le statut ; l'enqueuer arrête la répétition
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from booking_alerts.api.schemas.booking import BookingStatusIn
from booking_alerts.application.services.booking_store import BookingStore
from booking_alerts.domain.errors import BookingNotFoundError, InvalidTransitionError
from booking_alerts.infrastructure.persistence.database.session import get_db

router = APIRouter(prefix="/bookings")


def _serialize(b) -> dict:
    return {
        "id": str(b.id),
        "restaurant_id": str(b.restaurant_id),
        "status": b.status,
        "guest_name": b.guest_name,
        "party_size": b.party_size,
        "booking_time": b.booking_time.isoformat() if b.booking_time else None,
        "created_at": b.created_at.isoformat() if b.created_at else None,
    }


@router.get("")
async def list_bookings(
    restaurant_id: uuid.UUID,
    status_: str = Query("pending", alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    try:
        rows = BookingStore(db).list_by_status(
            restaurant_id, status_, date_from=date_from, date_to=date_to
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_status") from e
    return [_serialize(b) for b in rows]


@router.get("/{booking_id}/status")
async def get_booking_status(booking_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    try:
        current = BookingStore(db).get_status(booking_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found") from e
    return {"id": str(booking_id), "status": current}


@router.post("/{booking_id}/status")
async def update_booking_status(
    booking_id: uuid.UUID,
    payload: BookingStatusIn,
    db: Session = Depends(get_db),
) -> dict:
    try:
        b = BookingStore(db).update_status(booking_id, payload.status, note=payload.note)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found") from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_status") from e
    return _serialize(b)
