# server/tests/integration/test_outbox_flow.py
"""
Outbox – flux Postgres réel
- Une réservation pending → un intent livré (provider factice), puis une répétition.
- L'index unique partiel interdit deux chaînes vivantes pour le même booking.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from _dbutils import require_db_or_skip

pytestmark = pytest.mark.integration
require_db_or_skip()


class _OkProvider:
    def __init__(self):
        self.sent = []

    def send(self, messages):
        from booking_alerts.infrastructure.notifications.providers.expo_provider import PushTicket
        self.sent.extend(m.to for m in messages)
        return [PushTicket(push_address=m.to, ok=True, receipt_id=uuid.uuid4().hex) for m in messages]


def test_pending_booking_is_delivered_then_repeated(pg_schema):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import run_delivery_pass
    from booking_alerts.application.services.device_registry import DeviceRegistry
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import AlertIntent
    from booking_alerts.infrastructure.persistence.database.session import open_session

    rid = uuid.uuid4()
    t0 = datetime.now(timezone.utc) - timedelta(seconds=5)
    with open_session() as s:
        DeviceRegistry(s).register(restaurant_id=rid, device_id="it-tablet", push_address=f"tok-{rid}", now=t0)
    with open_session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=rid, guest_name="Integration", party_size=2, now=t0).id

    provider = _OkProvider()
    assert run_delivery_pass(now=t0 + timedelta(seconds=1), provider=provider).sent >= 1
    assert run_delivery_pass(now=t0 + timedelta(seconds=32), provider=provider).repeated == 1

    with open_session() as s:
        rows = list(s.scalars(select(AlertIntent).where(AlertIntent.booking_id == bid)))
        assert len(rows) == 2
        assert {r.status.value for r in rows} == {"sent"}


def test_only_one_live_chain_per_booking(pg_schema):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.infrastructure.persistence.database.session import open_session
    from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
        AlertIntentRepository,
    )

    rid = uuid.uuid4()
    now = datetime.now(timezone.utc)
    with open_session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=rid, now=now).id

    with pytest.raises(IntegrityError):
        with open_session() as s:
            repo = AlertIntentRepository(s)
            it = repo.add(restaurant_id=rid, booking_id=bid, kind="new_booking", title="t", body="b",
                          payload={}, now=now)
            repo.add_schedule(it, interval_seconds=30, repeat_until=now + timedelta(seconds=300), now=now)
