from __future__ import annotations
"""
server/booking_alerts/api/schemas/booking.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Schemas des réservations (Booking Store) et de l'outbox.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_alerts.domain.policies import BOOKING_STATUSES, IntentKind


class BookingStatusIn(BaseModel):
    status: str
    note: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in BOOKING_STATUSES:
            raise ValueError(f"status must be one of {sorted(BOOKING_STATUSES)}")
        return v


class OutboxEnqueueIn(BaseModel):
    """Intent ad hoc (alertes système, tests de bout en bout)."""
    restaurant_id: uuid.UUID
    kind: IntentKind = IntentKind.SYSTEM_ALERT
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=2000)
    payload: dict = Field(default_factory=dict)
    booking_id: Optional[uuid.UUID] = None
    priority: str = Field(default="high", pattern="^(high|normal|low)$")
    target_addresses: Optional[list[str]] = None
    scheduled_for: Optional[datetime] = None
