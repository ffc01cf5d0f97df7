# server/booking_alerts/infrastructure/persistence/repositories/delivery_log_repository.py
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_alerts.infrastructure.persistence.database.models.delivery_log import DeliveryLogEntry

_MAX_ERR = 2000


class DeliveryLogRepository:
    """
    Journal append-only des tentatives (intent, device).
    Ne gère PAS les commit/rollback. Les erreurs sont tronquées.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        *,
        intent_id: uuid.UUID,
        push_address: str,
        status: str,
        device_id: Optional[uuid.UUID] = None,
        provider_receipt_id: Optional[str] = None,
        error: Optional[str] = None,
        raw_response: Optional[dict] = None,
    ) -> DeliveryLogEntry:
        entry = DeliveryLogEntry(
            id=uuid.uuid4(),
            intent_id=intent_id,
            device_id=device_id,
            push_address=push_address,
            status=status,
            provider_receipt_id=provider_receipt_id,
            error=error[:_MAX_ERR] if error else None,
            raw_response=raw_response,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_intent(self, intent_id: uuid.UUID) -> list[DeliveryLogEntry]:
        stmt = (
            select(DeliveryLogEntry)
            .where(DeliveryLogEntry.intent_id == intent_id)
            .order_by(DeliveryLogEntry.created_at.asc())
        )
        return list(self.db.scalars(stmt))
