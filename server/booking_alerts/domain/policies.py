# server/booking_alerts/domain/policies.py

from __future__ import annotations
"""
Règles métier des transitions de réservation.

Fonction principale :
    classify_transition(before, after)
Décide quel effet outbox produit un changement de réservation
(création d'une chaîne répétée, arrêt de la répétition, intent informatif…).
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

PENDING = "pending"

BOOKING_STATUSES = frozenset({
    PENDING,
    "confirmed",
    "declined_by_restaurant",
    "cancelled_by_user",
    "cancelled_by_restaurant",
    "completed",
    "no_show",
})

# Statuts "traités" : quitter pending vers l'un d'eux arrête la chaîne de répétition
HANDLED_STATUSES = BOOKING_STATUSES - {PENDING}


class IntentKind(str, enum.Enum):
    NEW_BOOKING = "new_booking"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_MODIFIED = "booking_modified"
    URGENT_BOOKING = "urgent_booking"
    SYSTEM_ALERT = "system_alert"


class TransitionAction(str, enum.Enum):
    START_CHAIN = "start_chain"
    STOP_CHAIN = "stop_chain"
    STOP_AND_NOTIFY_CANCELLED = "stop_and_notify_cancelled"
    NOTIFY_MODIFIED = "notify_modified"
    NONE = "none"


@dataclass(frozen=True)
class BookingSnapshot:
    """Vue minimale d'une réservation, indépendante de l'ORM."""
    id: Any
    restaurant_id: Any
    status: str
    guest_name: Optional[str] = None
    party_size: Optional[int] = None
    booking_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "BookingSnapshot":
        return cls(
            id=row.id,
            restaurant_id=row.restaurant_id,
            status=row.status,
            guest_name=getattr(row, "guest_name", None),
            party_size=getattr(row, "party_size", None),
            booking_time=getattr(row, "booking_time", None),
            created_at=getattr(row, "created_at", None),
        )


def normalize_status(status: str | None) -> str:
    s = (status or "").strip().lower()
    if s not in BOOKING_STATUSES:
        from booking_alerts.domain.errors import InvalidTransitionError
        raise InvalidTransitionError(f"unknown booking status: {status!r}")
    return s


def classify_transition(before: Optional[BookingSnapshot], after: BookingSnapshot) -> TransitionAction:
    """
    `before=None` signifie une insertion.
    - entrée dans pending            → START_CHAIN (seul chemin qui démarre une chaîne)
    - pending → cancelled_by_user    → STOP_AND_NOTIFY_CANCELLED
    - pending → autre statut traité  → STOP_CHAIN
    - pending → pending modifié      → NOTIFY_MODIFIED (heure ou taille du groupe)
    - sinon                          → NONE
    """
    old_status = before.status if before is not None else None

    if after.status == PENDING and old_status != PENDING:
        return TransitionAction.START_CHAIN

    if old_status == PENDING and after.status in HANDLED_STATUSES:
        if after.status == "cancelled_by_user":
            return TransitionAction.STOP_AND_NOTIFY_CANCELLED
        return TransitionAction.STOP_CHAIN

    if old_status == PENDING and after.status == PENDING:
        if before.booking_time != after.booking_time or before.party_size != after.party_size:
            return TransitionAction.NOTIFY_MODIFIED

    return TransitionAction.NONE


def preference_field_for(kind: str) -> Optional[str]:
    """Colonne de préférences restaurant qui gouverne ce type d'intent (None = toujours)."""
    return {
        IntentKind.NEW_BOOKING.value: "new_bookings",
        IntentKind.URGENT_BOOKING.value: "new_bookings",
        IntentKind.BOOKING_CANCELLED.value: "booking_cancellations",
        IntentKind.BOOKING_MODIFIED.value: "booking_modifications",
    }.get(kind)
