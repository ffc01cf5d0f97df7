from __future__ import annotations

"""server/booking_alerts/application/services/outbox_enqueuer.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Outbox Enqueuer : transforme une transition de réservation en intents d'alerte.

- on_booking_change(session, before, after) est appelé par le Booking Store
  dans la MÊME transaction que l'écriture de la réservation (pas de commit ici).
- Entrée dans `pending` : un intent `new_booking` + une chaîne de répétition
  (seul chemin qui démarre une chaîne).
- Sortie de `pending` vers un statut traité : arrêt de la répétition (idempotent) ;
  `cancelled_by_user` ajoute un intent informatif `booking_cancelled`.
- pending → pending avec heure / taille modifiée : un intent `booking_modified`.
- Les préférences restaurant filtrent les intents, jamais l'arrêt de répétition.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from booking_alerts.core.config import settings
from booking_alerts.core.utils.datetime import as_utc, utcnow
from booking_alerts.domain.policies import (
    BookingSnapshot,
    IntentKind,
    TransitionAction,
    classify_transition,
    preference_field_for,
)
from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
    AlertIntentRepository,
)
from booking_alerts.infrastructure.persistence.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

PRIORITIES = ("high", "normal", "low")
DEFAULT_GUEST_NAME = "Guest"
DEEPLINK_TEMPLATE = "platemerchant://booking/{}"

__all__ = [
    "RepeatConfig",
    "enqueue",
    "on_booking_change",
    "stop_repeating",
    "render_alert",
    "build_booking_payload",
]


@dataclass(frozen=True)
class RepeatConfig:
    interval_seconds: int
    duration_seconds: int

    @classmethod
    def default(cls) -> "RepeatConfig":
        return cls(
            interval_seconds=settings.REPEAT_INTERVAL_SECONDS,
            duration_seconds=settings.REPEAT_DURATION_SECONDS,
        )


# ──────────────────────────────────────────────────────────────────────────────
# Rendu titre / corps / payload
# ──────────────────────────────────────────────────────────────────────────────

def _iso(d: Optional[datetime]) -> Optional[str]:
    return as_utc(d).isoformat() if d else None


def _format_booking_time(d: Optional[datetime]) -> str:
    # ex: "Oct 18 at 07:30 PM"
    if d is None:
        return "time TBD"
    return d.strftime("%b %d at %I:%M %p")


def render_alert(kind: str, booking: BookingSnapshot) -> tuple[str, str]:
    guest = booking.guest_name or DEFAULT_GUEST_NAME
    if kind == IntentKind.NEW_BOOKING.value:
        size = booking.party_size or 0
        return (
            "🎉 New Booking Request!",
            f"{guest} • {size} {'guest' if size == 1 else 'guests'} • {_format_booking_time(booking.booking_time)}",
        )
    if kind == IntentKind.BOOKING_CANCELLED.value:
        return "❌ Booking Cancelled", f"{guest} cancelled their booking"
    if kind == IntentKind.BOOKING_MODIFIED.value:
        return "📝 Booking Modified", f"{guest} updated their booking"
    raise ValueError(f"no booking template for kind={kind!r}")


def build_booking_payload(booking: BookingSnapshot) -> dict[str, Any]:
    return {
        "bookingId": str(booking.id),
        "restaurantId": str(booking.restaurant_id),
        "guestName": booking.guest_name or DEFAULT_GUEST_NAME,
        "partySize": booking.party_size,
        "bookingTime": _iso(booking.booking_time),
        "status": booking.status,
        "createdAt": _iso(booking.created_at),
        "deeplink": DEEPLINK_TEMPLATE.format(booking.id),
    }


# ──────────────────────────────────────────────────────────────────────────────
# API publique
# ──────────────────────────────────────────────────────────────────────────────

def enqueue(
    session: Session,
    *,
    restaurant_id: Any,
    kind: str,
    title: str,
    body: str,
    payload: dict,
    booking_id: Any = None,
    priority: str = "high",
    repeat: Optional[RepeatConfig] = None,
    target_addresses: Optional[Sequence[str]] = None,
    scheduled_for: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> uuid.UUID:
    """
    Écrit un intent `queued` (et sa chaîne de répétition si `repeat`).
    Retourne l'id de l'intent ; si un doublon récent ou une chaîne vivante existe
    déjà pour ce booking, retourne l'id existant sans rien écrire.
    """
    kind = IntentKind(kind).value
    if priority not in PRIORITIES:
        raise ValueError(f"invalid priority: {priority!r}")
    if repeat is not None and booking_id is None:
        raise ValueError("a repeat chain needs a booking_id")

    now = as_utc(now) if now else utcnow()
    repo = AlertIntentRepository(session)

    if booking_id is not None:
        if repeat is not None:
            live = repo.live_schedule_for_booking(booking_id, now=now)
            if live is not None:
                logger.info(
                    "outbox: repeat chain already live, not starting another",
                    extra={"booking_id": str(booking_id), "intent_id": str(live.intent_id)},
                )
                return live.intent_id

        recent = repo.find_recent_root(
            booking_id=booking_id,
            kind=kind,
            since=now - timedelta(seconds=settings.OUTBOX_DEDUP_WINDOW_SECONDS),
        )
        if recent is not None:
            logger.info(
                "outbox: duplicate intent suppressed",
                extra={"booking_id": str(booking_id), "kind": kind, "intent_id": str(recent.id)},
            )
            return recent.id

    intent = repo.add(
        restaurant_id=restaurant_id,
        booking_id=booking_id,
        kind=kind,
        title=title,
        body=body,
        payload=payload,
        priority=priority,
        sound=settings.PUSH_SOUND,
        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
        target_addresses=list(target_addresses) if target_addresses else None,
        scheduled_for=scheduled_for,
        now=now,
    )
    if repeat is not None:
        # chaînes expirées mais encore "enabled" : on les ferme avant d’en ouvrir une
        repo.stop_repeating(booking_id, now=now)
        repo.add_schedule(
            intent,
            interval_seconds=repeat.interval_seconds,
            repeat_until=now + timedelta(seconds=repeat.duration_seconds),
            now=now,
        )

    logger.info(
        "outbox: intent queued",
        extra={
            "intent_id": str(intent.id),
            "restaurant_id": str(intent.restaurant_id),
            "booking_id": str(booking_id) if booking_id else None,
            "kind": kind,
            "repeat": repeat is not None,
        },
    )
    return intent.id


def stop_repeating(session: Session, booking_id: Any, *, now: Optional[datetime] = None) -> int:
    """Désactive les chaînes vivantes du booking. Idempotent : 0 si déjà arrêtées."""
    now = as_utc(now) if now else utcnow()
    n = AlertIntentRepository(session).stop_repeating(booking_id, now=now)
    if n:
        logger.info("outbox: repeat stopped", extra={"booking_id": str(booking_id), "schedules": n})
    return n


def _notifications_allowed(session: Session, restaurant_id: Any, kind: str) -> bool:
    field_name = preference_field_for(kind)
    if field_name is None:
        return True
    prefs = BookingRepository(session).preferences(restaurant_id)
    if prefs is None:
        return True
    return bool(getattr(prefs, field_name))


def _enqueue_for_booking(
    session: Session,
    kind: IntentKind,
    booking: BookingSnapshot,
    *,
    repeat: Optional[RepeatConfig],
    now: datetime,
) -> Optional[uuid.UUID]:
    if not _notifications_allowed(session, booking.restaurant_id, kind.value):
        logger.info(
            "outbox: disabled by restaurant preferences",
            extra={"booking_id": str(booking.id), "restaurant_id": str(booking.restaurant_id), "kind": kind.value},
        )
        return None
    title, body = render_alert(kind.value, booking)
    return enqueue(
        session,
        restaurant_id=booking.restaurant_id,
        booking_id=booking.id,
        kind=kind.value,
        title=title,
        body=body,
        payload=build_booking_payload(booking),
        priority="high",
        repeat=repeat,
        now=now,
    )


def on_booking_change(
    session: Session,
    before: Optional[BookingSnapshot],
    after: BookingSnapshot,
    *,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """Applique la politique de transition. Retourne les ids d'intents concernés."""
    now = as_utc(now) if now else utcnow()
    action = classify_transition(before, after)
    created: list[uuid.UUID] = []

    if action is TransitionAction.START_CHAIN:
        iid = _enqueue_for_booking(
            session, IntentKind.NEW_BOOKING, after, repeat=RepeatConfig.default(), now=now
        )
        if iid is not None:
            created.append(iid)

    elif action in (TransitionAction.STOP_CHAIN, TransitionAction.STOP_AND_NOTIFY_CANCELLED):
        stop_repeating(session, after.id, now=now)
        if action is TransitionAction.STOP_AND_NOTIFY_CANCELLED:
            iid = _enqueue_for_booking(session, IntentKind.BOOKING_CANCELLED, after, repeat=None, now=now)
            if iid is not None:
                created.append(iid)

    elif action is TransitionAction.NOTIFY_MODIFIED:
        iid = _enqueue_for_booking(session, IntentKind.BOOKING_MODIFIED, after, repeat=None, now=now)
        if iid is not None:
            created.append(iid)

    return created
