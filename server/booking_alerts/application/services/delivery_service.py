from __future__ import annotations

"""server/booking_alerts/application/services/delivery_service.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Delivery Worker : une passe = Phase A (livraison des intents dus)
puis Phase B (création des enfants de répétition, livrés aussitôt).

Phase A, par intent (1 session par étape, primitives-only entre étapes) :
  1. claim atomique (claim_token + claimed_at) ; perdu → on passe ;
     chaîne de répétition arrêtée (booking traité) → `skipped`
  2. résolution des adresses actives (aucune → `skipped`)
  3. envoi batché via le provider ; une ligne de log par adresse,
     adresses "not registered" désactivées ; logs committés AVANT la décision
  4. décision : tout OK → `sent` ; sinon attempts+1 → `failed` au max,
     ou retour en file avec backoff + jitter

Phase B : chaînes vivantes dont la racine est `sent` et dont l'ancre
(last_repeat_at, sinon sent_at de la racine) a plus d'un intervalle.
CAS sur last_repeat_at + insertion de l'enfant dans la même transaction.
"""

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from booking_alerts.core.config import settings
from booking_alerts.core.utils.datetime import age_in_seconds, as_utc, utcnow
from booking_alerts.domain.errors import NoRecipientsError, PermanentAddressError, TransientDeliveryError
from booking_alerts.application.services.device_registry import DeviceRegistry
from booking_alerts.infrastructure.messaging.outbox import RetryPolicy
from booking_alerts.infrastructure.notifications.providers.expo_provider import (
    ExpoPushProvider,
    PushMessage,
    PushTicket,
)
from booking_alerts.infrastructure.persistence.database.models.alert_intent import IntentStatus
from booking_alerts.infrastructure.persistence.database.models.repeat_schedule import RepeatSchedule
from booking_alerts.infrastructure.persistence.database.session import open_session
from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
    AlertIntentRepository,
)
from booking_alerts.infrastructure.persistence.repositories.delivery_log_repository import (
    DeliveryLogRepository,
)

logger = logging.getLogger(__name__)

NO_ENABLED_DEVICES = "no_enabled_devices"
REPEAT_STOPPED = "repeat_stopped"


@dataclass
class DeliveryReport:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    retried: int = 0
    repeated: int = 0
    lost_races: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _ClaimedIntent:
    id: uuid.UUID
    token: str
    restaurant_id: uuid.UUID
    booking_id: Optional[uuid.UUID]
    kind: str
    title: str
    body: str
    payload: dict
    sound: str
    priority: str
    attempts: int
    max_attempts: int
    target_addresses: Optional[list]
    chain_stopped: bool = False

    def log_extra(self, **more: Any) -> dict:
        extra = {
            "intent_id": str(self.id),
            "booking_id": str(self.booking_id) if self.booking_id else None,
            "restaurant_id": str(self.restaurant_id),
            "attempts": self.attempts,
        }
        extra.update(more)
        return extra


# ──────────────────────────────────────────────────────────────────────────────
# Phase A
# ──────────────────────────────────────────────────────────────────────────────

def _claim(intent_id: uuid.UUID, now: datetime) -> Optional[_ClaimedIntent]:
    token = uuid.uuid4().hex
    with open_session() as s:
        repo = AlertIntentRepository(s)
        if not repo.claim(intent_id, token=token, now=now, lease_seconds=settings.OUTBOX_CLAIM_LEASE_SECONDS):
            return None
        it = repo.get(intent_id)
        if it is None:  # pragma: no cover
            return None
        sched = repo.chain_schedule(it)
        return _ClaimedIntent(
            id=it.id,
            token=token,
            restaurant_id=it.restaurant_id,
            booking_id=it.booking_id,
            kind=it.kind,
            title=it.title,
            body=it.body,
            payload=dict(it.payload or {}),
            sound=it.sound,
            priority=it.priority,
            attempts=it.attempts,
            max_attempts=it.max_attempts,
            target_addresses=list(it.target_addresses) if it.target_addresses else None,
            chain_stopped=sched is not None and not sched.enabled,
        )


def _resolve_addresses(intent: _ClaimedIntent) -> list[tuple[uuid.UUID, str]]:
    with open_session() as s:
        devices = DeviceRegistry(s).list_enabled(intent.restaurant_id)
        pairs = [(d.id, d.push_address) for d in devices]
    if intent.target_addresses:
        wanted = set(intent.target_addresses)
        pairs = [p for p in pairs if p[1] in wanted]
    if not pairs:
        raise NoRecipientsError(NO_ENABLED_DEVICES, context=intent.log_extra())
    return pairs


def build_messages(intent: _ClaimedIntent, addresses: list[str], now: datetime) -> list[PushMessage]:
    data = dict(intent.payload)
    data.update({
        "notificationId": str(intent.id),
        "bookingId": str(intent.booking_id) if intent.booking_id else None,
        "type": intent.kind,
        "timestamp": now.isoformat(),
    })
    return [
        PushMessage(
            to=addr,
            title=intent.title,
            body=intent.body,
            data=data,
            sound=intent.sound,
            priority=intent.priority,
            channel_id=settings.PUSH_CHANNEL_ID,
        )
        for addr in addresses
    ]


def _record_tickets(
    intent: _ClaimedIntent, pairs: list[tuple[uuid.UUID, str]], tickets: list[PushTicket]
) -> list[PushTicket]:
    """Une ligne de log par adresse + désactivation des adresses invalides. Commit ici."""
    by_address = {t.push_address: t for t in tickets}
    resolved: list[PushTicket] = []
    with open_session() as s:
        logs = DeliveryLogRepository(s)
        registry = DeviceRegistry(s)
        for device_id, address in pairs:
            ticket = by_address.get(address) or PushTicket(push_address=address, ok=False, error="missing_ticket")
            resolved.append(ticket)
            logs.add(
                intent_id=intent.id,
                device_id=device_id,
                push_address=address,
                status="ok" if ticket.ok else "error",
                provider_receipt_id=ticket.receipt_id,
                error=ticket.error,
                raw_response=ticket.raw,
            )
            if ticket.permanent:
                err = PermanentAddressError(ticket.error or "not registered", push_address=address)
                logger.warning("delivery: %s", err.message, extra=intent.log_extra(push_address=address))
                registry.disable(address, restaurant_id=intent.restaurant_id)
    return resolved


def _finish(intent: _ClaimedIntent, now: datetime, report: DeliveryReport, **values: Any) -> bool:
    with open_session() as s:
        won = AlertIntentRepository(s).finish(intent.id, token=intent.token, now=now, **values)
    if not won:
        report.lost_races += 1
        logger.warning("delivery: lost the race on final transition", extra=intent.log_extra())
    return won


def _retry_or_fail(
    intent: _ClaimedIntent, error: str, now: datetime, policy: RetryPolicy, report: DeliveryReport
) -> None:
    attempts = intent.attempts + 1
    if attempts >= intent.max_attempts:
        if _finish(intent, now, report, status=IntentStatus.FAILED, attempts=attempts, error=error):
            report.failed += 1
            logger.error("delivery: intent failed", extra=intent.log_extra(attempts=attempts, error=error))
        return
    when = policy.next_attempt_at(attempts, now=now)
    if _finish(intent, now, report, attempts=attempts, error=error, scheduled_for=when):
        report.retried += 1
        logger.info(
            "delivery: retry scheduled",
            extra=intent.log_extra(attempts=attempts, error=error, scheduled_for=when.isoformat()),
        )


def deliver_intent(
    intent_id: uuid.UUID,
    *,
    provider: Any,
    policy: RetryPolicy,
    now: datetime,
    report: DeliveryReport,
) -> None:
    intent = _claim(intent_id, now)
    if intent is None:
        report.lost_races += 1
        logger.info("delivery: claim lost", extra={"intent_id": str(intent_id)})
        return
    report.processed += 1

    # réservation traitée entre-temps : plus aucun push "nouvelle réservation" pour cette chaîne
    if intent.chain_stopped:
        if _finish(intent, now, report, status=IntentStatus.SKIPPED, attempts=intent.attempts + 1, error=REPEAT_STOPPED):
            report.skipped += 1
            logger.info("delivery: skipped, repeat chain stopped", extra=intent.log_extra())
        return

    try:
        pairs = _resolve_addresses(intent)
    except NoRecipientsError as exc:
        if _finish(intent, now, report, status=IntentStatus.SKIPPED, attempts=intent.attempts + 1, error=exc.message):
            report.skipped += 1
            logger.info("delivery: skipped, no enabled device", extra=exc.context)
        return

    try:
        tickets = provider.send(build_messages(intent, [a for _, a in pairs], now))
    except Exception as exc:
        logger.exception("delivery: provider raised", extra=intent.log_extra())
        tickets = [PushTicket(push_address=a, ok=False, error=f"provider_error: {exc}") for _, a in pairs]

    resolved = _record_tickets(intent, pairs, tickets)

    if resolved and all(t.ok for t in resolved):
        receipts = [t.receipt_id for t in resolved if t.receipt_id]
        if _finish(
            intent, now, report,
            status=IntentStatus.SENT, sent_at=now, attempts=intent.attempts + 1,
            receipt_ids=receipts, error=None,
        ):
            report.sent += 1
            logger.info("delivery: sent", extra=intent.log_extra(devices=len(resolved)))
        return

    failed = [t for t in resolved if not t.ok]
    err = TransientDeliveryError(
        "; ".join(sorted({t.error or "push_error" for t in failed})),
        context=intent.log_extra(failed_devices=len(failed), devices=len(resolved)),
    )
    logger.warning("delivery: %s", err.message, extra=err.context)
    _retry_or_fail(intent, err.message, now, policy, report)


# ──────────────────────────────────────────────────────────────────────────────
# Phase B
# ──────────────────────────────────────────────────────────────────────────────

def _due_repeats(now: datetime) -> list[tuple[uuid.UUID, Optional[datetime]]]:
    with open_session() as s:
        cands = AlertIntentRepository(s).repeat_candidates(now=now, limit=settings.REPEAT_BATCH_SIZE)
        due = []
        for sched, root in cands:
            anchor = sched.last_repeat_at or root.sent_at
            elapsed = age_in_seconds(anchor, now=now)
            if elapsed is not None and elapsed >= sched.interval_seconds:
                due.append((sched.id, sched.last_repeat_at))
        return due


def _spawn_child(schedule_id: uuid.UUID, expected_last: Optional[datetime], now: datetime) -> Optional[uuid.UUID]:
    with open_session() as s:
        repo = AlertIntentRepository(s)
        sched = s.get(RepeatSchedule, schedule_id)
        if sched is None:
            return None
        if not repo.advance_schedule(sched, expected_last_repeat_at=expected_last, now=now):
            return None
        root = repo.get(sched.intent_id)
        count = (sched.repeat_count or 0) + 1
        payload = dict(root.payload or {})
        payload.update({"isRepeat": True, "repeatCount": count})
        child = repo.add(
            restaurant_id=root.restaurant_id,
            booking_id=root.booking_id,
            parent_id=root.id,
            kind=root.kind,
            title=root.title,
            body=root.body,
            payload=payload,
            priority=root.priority,
            sound=root.sound,
            max_attempts=root.max_attempts,
            target_addresses=root.target_addresses,
            now=now,
        )
        logger.info(
            "repeat: child intent created",
            extra={
                "intent_id": str(child.id),
                "parent_id": str(root.id),
                "booking_id": str(root.booking_id) if root.booking_id else None,
                "restaurant_id": str(root.restaurant_id),
                "repeat_count": count,
            },
        )
        return child.id


# ──────────────────────────────────────────────────────────────────────────────
# Passe complète
# ──────────────────────────────────────────────────────────────────────────────

def run_delivery_pass(
    now: Optional[datetime] = None,
    provider: Any = None,
    limit: Optional[int] = None,
) -> DeliveryReport:
    now = as_utc(now) if now else utcnow()
    provider = provider or ExpoPushProvider()
    policy = RetryPolicy()
    report = DeliveryReport()

    with open_session() as s:
        ids = AlertIntentRepository(s).due_ids(
            now=now,
            limit=limit or settings.OUTBOX_BATCH_SIZE,
            lease_seconds=settings.OUTBOX_CLAIM_LEASE_SECONDS,
        )

    for iid in ids:
        try:
            deliver_intent(iid, provider=provider, policy=policy, now=now, report=report)
        except Exception:
            # le bail expirera : l'intent sera repris par une passe suivante
            logger.exception("delivery: unexpected error", extra={"intent_id": str(iid)})

    for schedule_id, expected_last in _due_repeats(now):
        try:
            child_id = _spawn_child(schedule_id, expected_last, now)
        except Exception:
            logger.exception("repeat: failed to create child", extra={"schedule_id": str(schedule_id)})
            continue
        if child_id is None:
            report.lost_races += 1
            continue
        report.repeated += 1
        try:
            deliver_intent(child_id, provider=provider, policy=policy, now=now, report=report)
        except Exception:
            logger.exception("delivery: unexpected error", extra={"intent_id": str(child_id)})

    logger.info("delivery pass done", extra=report.as_dict())
    return report
