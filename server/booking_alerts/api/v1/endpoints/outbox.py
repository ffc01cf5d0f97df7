from __future__ import annotations
"""
server/booking_alerts/api/v1/endpoints/outbox.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Surface opérationnelle de l'outbox :
- POST /outbox                   : enfile un intent (alertes système)
- GET  /outbox                   : derniers intents (filtrables)
- GET  /outbox/{id}/deliveries   : timeline des tentatives par device
- POST /outbox/run               : déclenche une passe de livraison (tâche Celery)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_alerts.api.schemas.booking import OutboxEnqueueIn
from booking_alerts.application.services import outbox_enqueuer
from booking_alerts.infrastructure.persistence.database.models.alert_intent import IntentStatus
from booking_alerts.infrastructure.persistence.database.session import get_db
from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
    AlertIntentRepository,
)
from booking_alerts.infrastructure.persistence.repositories.delivery_log_repository import (
    DeliveryLogRepository,
)
from booking_alerts.workers.tasks.outbox_tasks import deliver_outbox

router = APIRouter(prefix="/outbox")


def _iso(d):
    return d.isoformat() if d else None


def _serialize(it) -> dict:
    return {
        "id": str(it.id),
        "restaurant_id": str(it.restaurant_id),
        "booking_id": str(it.booking_id) if it.booking_id else None,
        "parent_id": str(it.parent_id) if it.parent_id else None,
        "kind": it.kind,
        "title": it.title,
        "status": it.status.value if hasattr(it.status, "value") else it.status,
        "attempts": it.attempts,
        "max_attempts": it.max_attempts,
        "scheduled_for": _iso(it.scheduled_for),
        "sent_at": _iso(it.sent_at),
        "error": it.error,
        "repeat_enabled": it.repeat_enabled,
        "repeat_until": _iso(it.repeat_until),
        "repeat_count": it.repeat_count,
        "created_at": _iso(it.created_at),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def enqueue_intent(payload: OutboxEnqueueIn, db: Session = Depends(get_db)) -> dict:
    try:
        intent_id = outbox_enqueuer.enqueue(
            db,
            restaurant_id=payload.restaurant_id,
            kind=payload.kind.value,
            title=payload.title,
            body=payload.body,
            payload=payload.payload,
            booking_id=payload.booking_id,
            priority=payload.priority,
            target_addresses=payload.target_addresses,
            scheduled_for=payload.scheduled_for,
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="unknown_booking") from e
    return {"id": str(intent_id)}


@router.get("")
async def list_intents(
    restaurant_id: Optional[uuid.UUID] = None,
    status_: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[dict]:
    if status_ is not None and status_ not in {s.value for s in IntentStatus}:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_status")
    rows = AlertIntentRepository(db).list_recent(restaurant_id=restaurant_id, status=status_, limit=limit)
    return [_serialize(it) for it in rows]


@router.get("/{intent_id}/deliveries")
async def intent_deliveries(intent_id: uuid.UUID, db: Session = Depends(get_db)) -> dict:
    intent = AlertIntentRepository(db).get(intent_id)
    if intent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="intent_not_found")
    logs = DeliveryLogRepository(db).list_for_intent(intent.id)
    return {
        "intent": _serialize(intent),
        "deliveries": [
            {
                "push_address": log.push_address,
                "device_id": str(log.device_id) if log.device_id else None,
                "status": log.status,
                "provider_receipt_id": log.provider_receipt_id,
                "error": log.error,
                "created_at": _iso(log.created_at),
            }
            for log in logs
        ],
    }


@router.post("/run", status_code=status.HTTP_202_ACCEPTED)
async def run_delivery(limit: Optional[int] = Query(None, ge=1, le=1000)) -> dict:
    res = deliver_outbox.apply_async(kwargs={"limit": limit}, queue="outbox")
    return {"task_id": res.id}
