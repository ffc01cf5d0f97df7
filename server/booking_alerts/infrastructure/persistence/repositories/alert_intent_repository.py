# server/booking_alerts/infrastructure/persistence/repositories/alert_intent_repository.py
from __future__ import annotations
"""
Repository AlertIntent / RepeatSchedule : opérations bas niveau de l'outbox.

Points clés :
- Ne gère PAS les commit/rollback : c'est à la charge de l'appelant
  (le service enqueuer écrit dans la transaction du Booking Store).
- Toutes les transitions d'état passent par des UPDATE conditionnels
  (rowcount == 1 ⇔ on a gagné la course).
- Conversions UUID robustes pour accepter str/uuid.UUID.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update, or_, and_
from sqlalchemy.orm import Session

from booking_alerts.core.utils.datetime import as_utc, utcnow
from booking_alerts.infrastructure.persistence.database.models.alert_intent import (
    AlertIntent,
    IntentStatus,
)
from booking_alerts.infrastructure.persistence.database.models.repeat_schedule import RepeatSchedule


def _coerce_uuid(v: str | uuid.UUID | None) -> uuid.UUID | None:
    """Convertit str → UUID (ou passe-through) ; None si invalide."""
    if v is None:
        return None
    if isinstance(v, uuid.UUID):
        return v
    try:
        return uuid.UUID(str(v))
    except (TypeError, ValueError):
        return None


def _require_uuid(v: str | uuid.UUID | None, *, field: str) -> uuid.UUID:
    """Variante stricte : lève si invalide (champs NOT NULL en DB)."""
    u = _coerce_uuid(v)
    if u is None:
        raise ValueError(f"AlertIntentRepository: invalid {field}={v!r}")
    return u


class AlertIntentRepository:
    def __init__(self, session: Session):
        self.s = session

    # --- Create ---------------------------------------------------------------

    def add(
        self,
        *,
        restaurant_id: str | uuid.UUID,
        kind: str,
        title: str,
        body: str,
        payload: dict,
        booking_id: str | uuid.UUID | None = None,
        parent_id: str | uuid.UUID | None = None,
        priority: str = "high",
        sound: str = "default",
        max_attempts: int = 3,
        target_addresses: Optional[list[str]] = None,
        scheduled_for: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> AlertIntent:
        """Insère un intent `queued` (flush, sans commit)."""
        now = as_utc(now) if now else utcnow()
        intent = AlertIntent(
            id=uuid.uuid4(),
            restaurant_id=_require_uuid(restaurant_id, field="restaurant_id"),
            booking_id=_coerce_uuid(booking_id),
            parent_id=_coerce_uuid(parent_id),
            kind=kind,
            title=title,
            body=body,
            payload=dict(payload or {}),
            priority=priority,
            sound=sound,
            status=IntentStatus.QUEUED,
            attempts=0,
            max_attempts=max_attempts,
            target_addresses=list(target_addresses) if target_addresses else None,
            scheduled_for=as_utc(scheduled_for) if scheduled_for else now,
            created_at=now,
            updated_at=now,
        )
        self.s.add(intent)
        self.s.flush()
        return intent

    def add_schedule(
        self,
        intent: AlertIntent,
        *,
        interval_seconds: int,
        repeat_until: datetime,
        now: Optional[datetime] = None,
    ) -> RepeatSchedule:
        now = as_utc(now) if now else utcnow()
        sched = RepeatSchedule(
            id=uuid.uuid4(),
            intent_id=intent.id,
            restaurant_id=intent.restaurant_id,
            booking_id=intent.booking_id,
            enabled=True,
            interval_seconds=int(interval_seconds),
            repeat_until=as_utc(repeat_until),
            last_repeat_at=None,
            repeat_count=0,
            created_at=now,
            updated_at=now,
        )
        self.s.add(sched)
        intent.repeat_schedule = sched
        self.s.flush()
        return sched

    # --- Read ----------------------------------------------------------------

    def get(self, intent_id: str | uuid.UUID) -> AlertIntent | None:
        iid = _coerce_uuid(intent_id)
        if iid is None:
            return None
        return self.s.get(AlertIntent, iid)

    def find_recent_root(
        self, *, booking_id: str | uuid.UUID, kind: str, since: datetime
    ) -> AlertIntent | None:
        """Intent racine encore `queued` pour (booking, kind), créé après `since`."""
        stmt = (
            select(AlertIntent)
            .where(
                AlertIntent.booking_id == _require_uuid(booking_id, field="booking_id"),
                AlertIntent.kind == kind,
                AlertIntent.parent_id.is_(None),
                AlertIntent.status == IntentStatus.QUEUED,
                AlertIntent.created_at >= as_utc(since),
            )
            .order_by(AlertIntent.created_at.desc())
            .limit(1)
        )
        return self.s.scalars(stmt).first()

    def live_schedule_for_booking(
        self, booking_id: str | uuid.UUID, *, now: datetime
    ) -> RepeatSchedule | None:
        """Chaîne activée et non expirée pour ce booking (au plus une)."""
        stmt = (
            select(RepeatSchedule)
            .where(
                RepeatSchedule.booking_id == _require_uuid(booking_id, field="booking_id"),
                RepeatSchedule.enabled.is_(True),
                RepeatSchedule.repeat_until > as_utc(now),
            )
            .limit(1)
        )
        return self.s.scalars(stmt).first()

    def chain_schedule(self, intent: AlertIntent) -> RepeatSchedule | None:
        """Schedule de la chaîne de l'intent : le sien (racine) ou celui de son parent (répétition)."""
        root_id = intent.parent_id or intent.id
        return self.s.scalars(
            select(RepeatSchedule).where(RepeatSchedule.intent_id == root_id).limit(1)
        ).first()

    def due_ids(self, *, now: datetime, limit: int, lease_seconds: int) -> list[uuid.UUID]:
        """
        Ids des intents livrables, les plus anciens d'abord :
        queued, scheduled_for <= now, attempts < max_attempts, pas de bail vivant.
        """
        now = as_utc(now)
        stmt = (
            select(AlertIntent.id)
            .where(
                AlertIntent.status == IntentStatus.QUEUED,
                AlertIntent.scheduled_for <= now,
                AlertIntent.attempts < AlertIntent.max_attempts,
                or_(
                    AlertIntent.claim_token.is_(None),
                    AlertIntent.claimed_at < now - timedelta(seconds=lease_seconds),
                ),
            )
            .order_by(AlertIntent.scheduled_for.asc(), AlertIntent.created_at.asc())
            .limit(limit)
        )
        return list(self.s.scalars(stmt))

    def list_recent(
        self,
        *,
        restaurant_id: str | uuid.UUID | None = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> list[AlertIntent]:
        stmt = select(AlertIntent)
        rid = _coerce_uuid(restaurant_id)
        if rid is not None:
            stmt = stmt.where(AlertIntent.restaurant_id == rid)
        if status:
            stmt = stmt.where(AlertIntent.status == IntentStatus(status))
        stmt = stmt.order_by(AlertIntent.created_at.desc()).limit(limit)
        return list(self.s.scalars(stmt))

    def children_of(self, root_id: str | uuid.UUID) -> list[AlertIntent]:
        stmt = (
            select(AlertIntent)
            .where(AlertIntent.parent_id == _require_uuid(root_id, field="root_id"))
            .order_by(AlertIntent.created_at.asc())
        )
        return list(self.s.scalars(stmt))

    def repeat_candidates(self, *, now: datetime, limit: int) -> list[tuple[RepeatSchedule, AlertIntent]]:
        """
        Chaînes vivantes dont la racine a été envoyée. Le filtre d'intervalle
        (now - ancre >= interval) est appliqué par l'appelant.
        """
        stmt = (
            select(RepeatSchedule, AlertIntent)
            .join(AlertIntent, AlertIntent.id == RepeatSchedule.intent_id)
            .where(
                RepeatSchedule.enabled.is_(True),
                RepeatSchedule.repeat_until > as_utc(now),
                AlertIntent.status == IntentStatus.SENT,
            )
            .order_by(RepeatSchedule.created_at.asc())
            .limit(limit)
        )
        return [(sched, root) for sched, root in self.s.execute(stmt).all()]

    # --- Update (conditionnels) ---------------------------------------------

    def claim(self, intent_id: uuid.UUID, *, token: str, now: datetime, lease_seconds: int) -> bool:
        """Pose un bail sur l'intent s'il est toujours queued et non réclamé (ou bail expiré)."""
        now = as_utc(now)
        res = self.s.execute(
            update(AlertIntent)
            .where(
                AlertIntent.id == intent_id,
                AlertIntent.status == IntentStatus.QUEUED,
                or_(
                    AlertIntent.claim_token.is_(None),
                    AlertIntent.claimed_at < now - timedelta(seconds=lease_seconds),
                ),
            )
            .values(claim_token=token, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def finish(self, intent_id: uuid.UUID, *, token: str, now: datetime, **values: Any) -> bool:
        """
        Transition finale (ou reprogrammation) conditionnée à (id, queued, token).
        Libère le bail dans tous les cas.
        """
        res = self.s.execute(
            update(AlertIntent)
            .where(
                AlertIntent.id == intent_id,
                AlertIntent.status == IntentStatus.QUEUED,
                AlertIntent.claim_token == token,
            )
            .values(claim_token=None, claimed_at=None, updated_at=as_utc(now), **values)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def stop_repeating(self, booking_id: str | uuid.UUID, *, now: datetime) -> int:
        """enabled=False, repeat_until=now sur les chaînes vivantes du booking. Idempotent."""
        now = as_utc(now)
        res = self.s.execute(
            update(RepeatSchedule)
            .where(
                RepeatSchedule.booking_id == _require_uuid(booking_id, field="booking_id"),
                RepeatSchedule.enabled.is_(True),
            )
            .values(enabled=False, repeat_until=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount or 0

    def advance_schedule(
        self, sched: RepeatSchedule, *, expected_last_repeat_at: datetime | None, now: datetime
    ) -> bool:
        """Compare-and-swap sur last_repeat_at : un seul worker gagne une échéance donnée."""
        now = as_utc(now)
        anchor_cond = (
            RepeatSchedule.last_repeat_at.is_(None)
            if expected_last_repeat_at is None
            else RepeatSchedule.last_repeat_at == as_utc(expected_last_repeat_at)
        )
        res = self.s.execute(
            update(RepeatSchedule)
            .where(
                and_(
                    RepeatSchedule.id == sched.id,
                    RepeatSchedule.enabled.is_(True),
                    RepeatSchedule.repeat_until > now,
                    anchor_cond,
                )
            )
            .values(
                last_repeat_at=now,
                repeat_count=RepeatSchedule.repeat_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1
