import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

pytestmark = pytest.mark.unit


def _register(Session, restaurant_id, device_id, address, now):
    from booking_alerts.application.services.device_registry import DeviceRegistry
    with Session() as s:
        return DeviceRegistry(s).register(
            restaurant_id=restaurant_id, device_id=device_id, push_address=address, platform="ios", now=now
        ).id


def _system_intent(Session, restaurant_id, now, **kw):
    from booking_alerts.application.services import outbox_enqueuer
    with Session() as s:
        iid = outbox_enqueuer.enqueue(
            s, restaurant_id=restaurant_id, kind="system_alert",
            title="Printer offline", body="Kitchen printer is offline", payload={"a": 1}, now=now, **kw,
        )
        s.commit()
        return iid


def _get(Session, intent_id):
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import AlertIntent
    with Session() as s:
        return s.get(AlertIntent, intent_id)


def _all_for_booking(Session, booking_id):
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import AlertIntent
    with Session() as s:
        return list(s.scalars(
            select(AlertIntent).where(AlertIntent.booking_id == booking_id).order_by(AlertIntent.created_at)
        ))


def test_pending_booking_rings_until_confirmed(Session, restaurant_id, t0, push_provider):
    """T0 insert → push ; T0+40 répétition ; confirmé à T0+45 → plus rien à T0+70."""
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    _register(Session, restaurant_id, "tablet-1", "ExponentPushToken[aaa]", t0)
    with Session() as s:
        bid = BookingStore(s).record_booking(
            restaurant_id=restaurant_id, guest_name="Alice", party_size=2, now=t0
        ).id

    r1 = run_delivery_pass(now=t0 + timedelta(seconds=10), provider=push_provider)
    assert (r1.sent, r1.repeated) == (1, 0)

    r2 = run_delivery_pass(now=t0 + timedelta(seconds=40), provider=push_provider)
    assert (r2.sent, r2.repeated) == (1, 1)

    rows = _all_for_booking(Session, bid)
    assert len(rows) == 2
    root, child = rows
    assert child.parent_id == root.id
    assert child.status.value == "sent"
    assert child.payload["isRepeat"] is True
    assert child.payload["repeatCount"] == 1
    assert root.repeat_count == 1
    assert root.last_repeat_at == t0 + timedelta(seconds=40)

    with Session() as s:
        BookingStore(s).update_status(bid, "confirmed", now=t0 + timedelta(seconds=45))

    r3 = run_delivery_pass(now=t0 + timedelta(seconds=70), provider=push_provider)
    assert r3.repeated == 0
    assert len(_all_for_booking(Session, bid)) == 2
    assert len(push_provider.batches) == 2

    root = _get(Session, root.id)
    assert root.repeat_enabled is False
    assert root.repeat_until == t0 + timedelta(seconds=45)

    # message : data payload + champs de routage
    data = push_provider.batches[0][0].data
    assert data["notificationId"] == str(root.id)
    assert data["bookingId"] == str(bid)
    assert data["type"] == "new_booking"


def test_repeat_waits_for_a_full_interval(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    _register(Session, restaurant_id, "tablet-1", "ExponentPushToken[aaa]", t0)
    with Session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=restaurant_id, now=t0).id

    run_delivery_pass(now=t0, provider=push_provider)
    assert run_delivery_pass(now=t0 + timedelta(seconds=29), provider=push_provider).repeated == 0
    assert run_delivery_pass(now=t0 + timedelta(seconds=30), provider=push_provider).repeated == 1
    # ancre = dernière répétition
    assert run_delivery_pass(now=t0 + timedelta(seconds=45), provider=push_provider).repeated == 0
    assert run_delivery_pass(now=t0 + timedelta(seconds=61), provider=push_provider).repeated == 1
    assert len(_all_for_booking(Session, bid)) == 3


def test_repeat_stops_after_duration(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    _register(Session, restaurant_id, "tablet-1", "ExponentPushToken[aaa]", t0)
    with Session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=restaurant_id, now=t0).id

    run_delivery_pass(now=t0, provider=push_provider)
    assert run_delivery_pass(now=t0 + timedelta(seconds=301), provider=push_provider).repeated == 0
    assert len(_all_for_booking(Session, bid)) == 1


def test_retrying_repeat_is_skipped_once_booking_is_confirmed(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    addr = "ExponentPushToken[aaa]"
    _register(Session, restaurant_id, "tablet-1", addr, t0)
    with Session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=restaurant_id, now=t0).id

    assert run_delivery_pass(now=t0, provider=push_provider).sent == 1

    push_provider.behaviour[addr] = "transient"
    r = run_delivery_pass(now=t0 + timedelta(seconds=30), provider=push_provider)
    assert (r.repeated, r.retried) == (1, 1)
    assert len(push_provider.batches) == 2

    with Session() as s:
        BookingStore(s).update_status(bid, "confirmed", now=t0 + timedelta(seconds=35))

    push_provider.behaviour[addr] = "ok"
    r = run_delivery_pass(now=t0 + timedelta(seconds=200), provider=push_provider)
    assert (r.sent, r.skipped, r.repeated) == (0, 1, 0)
    assert len(push_provider.batches) == 2

    root, child = _all_for_booking(Session, bid)[:2]
    assert child.parent_id == root.id
    assert child.status.value == "skipped"
    assert child.error == "repeat_stopped"


def test_always_failing_intent_is_failed_after_max_attempts(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.delivery_service import run_delivery_pass
    from booking_alerts.infrastructure.persistence.repositories.delivery_log_repository import (
        DeliveryLogRepository,
    )

    push_provider.default = "transient"
    _register(Session, restaurant_id, "tablet-1", "ExponentPushToken[aaa]", t0)
    iid = _system_intent(Session, restaurant_id, t0)

    r = run_delivery_pass(now=t0, provider=push_provider)
    assert r.retried == 1
    it = _get(Session, iid)
    assert it.status.value == "queued" and it.attempts == 1
    assert t0 + timedelta(seconds=24) <= it.scheduled_for <= t0 + timedelta(seconds=36)
    assert it.claim_token is None

    # pas encore dû
    assert run_delivery_pass(now=t0 + timedelta(seconds=5), provider=push_provider).processed == 0

    run_delivery_pass(now=t0 + timedelta(seconds=100), provider=push_provider)
    assert _get(Session, iid).attempts == 2

    r = run_delivery_pass(now=t0 + timedelta(seconds=400), provider=push_provider)
    assert r.failed == 1
    it = _get(Session, iid)
    assert it.status.value == "failed"
    assert it.attempts == 3
    assert it.error == "http_503"

    assert run_delivery_pass(now=t0 + timedelta(seconds=2000), provider=push_provider).processed == 0
    assert len(push_provider.batches) == 3

    with Session() as s:
        logs = DeliveryLogRepository(s).list_for_intent(iid)
        assert [l.status for l in logs] == ["error", "error", "error"]


def test_unregistered_address_is_disabled_and_excluded(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.delivery_service import run_delivery_pass
    from booking_alerts.infrastructure.persistence.database.models.device import RestaurantDevice

    bad, good = "ExponentPushToken[bad]", "ExponentPushToken[good]"
    bad_id = _register(Session, restaurant_id, "tablet-old", bad, t0)
    _register(Session, restaurant_id, "tablet-new", good, t0)
    push_provider.behaviour[bad] = "not_registered"

    iid = _system_intent(Session, restaurant_id, t0)
    r = run_delivery_pass(now=t0, provider=push_provider)
    assert r.retried == 1
    assert sorted(push_provider.addresses_sent[0]) == sorted([bad, good])

    with Session() as s:
        assert s.get(RestaurantDevice, bad_id).enabled is False

    r = run_delivery_pass(now=t0 + timedelta(seconds=100), provider=push_provider)
    assert r.sent == 1
    assert push_provider.addresses_sent[1] == [good]
    it = _get(Session, iid)
    assert it.status.value == "sent"
    assert it.attempts == 2


def test_reregistering_reenables_address(Session, restaurant_id, t0):
    from booking_alerts.application.services.device_registry import DeviceRegistry

    _register(Session, restaurant_id, "tablet-1", "tok-1", t0)
    with Session() as s:
        assert DeviceRegistry(s).disable("tok-1", restaurant_id=restaurant_id) == 1
        s.commit()
    with Session() as s:
        assert DeviceRegistry(s).list_enabled(restaurant_id) == []
    _register(Session, restaurant_id, "tablet-1", "tok-1", t0)
    with Session() as s:
        assert [d.push_address for d in DeviceRegistry(s).list_enabled(restaurant_id)] == ["tok-1"]


def test_no_enabled_device_skips_intent(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    iid = _system_intent(Session, restaurant_id, t0)
    r = run_delivery_pass(now=t0, provider=push_provider)
    assert r.skipped == 1
    it = _get(Session, iid)
    assert it.status.value == "skipped"
    assert it.error == "no_enabled_devices"
    assert it.attempts == 1
    assert push_provider.batches == []


def test_target_addresses_restrict_recipients(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    _register(Session, restaurant_id, "t1", "tok-1", t0)
    _register(Session, restaurant_id, "t2", "tok-2", t0)
    _system_intent(Session, restaurant_id, t0, target_addresses=["tok-2"])

    assert run_delivery_pass(now=t0, provider=push_provider).sent == 1
    assert push_provider.addresses_sent == [["tok-2"]]


def test_claimed_intent_is_left_alone_until_lease_expires(Session, restaurant_id, t0, push_provider):
    from booking_alerts.application.services.delivery_service import run_delivery_pass
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import AlertIntent

    _register(Session, restaurant_id, "tablet-1", "tok-1", t0)
    iid = _system_intent(Session, restaurant_id, t0)
    with Session() as s:
        it = s.get(AlertIntent, iid)
        it.claim_token = "another-worker"
        it.claimed_at = t0
        s.commit()

    assert run_delivery_pass(now=t0 + timedelta(seconds=10), provider=push_provider).processed == 0
    r = run_delivery_pass(now=t0 + timedelta(seconds=121), provider=push_provider)
    assert r.processed == 1 and r.sent == 1


def test_claim_is_exclusive(Session, restaurant_id, t0):
    from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
        AlertIntentRepository,
    )

    iid = _system_intent(Session, restaurant_id, t0)
    with Session() as s:
        repo = AlertIntentRepository(s)
        assert repo.claim(iid, token="a", now=t0, lease_seconds=120) is True
        assert repo.claim(iid, token="b", now=t0, lease_seconds=120) is False
        # seul le détenteur du bail peut conclure
        assert repo.finish(iid, token="b", now=t0, attempts=1) is False
        assert repo.finish(iid, token="a", now=t0, attempts=1) is True
        s.commit()


def test_concurrent_repeat_advance_creates_one_child(Session, restaurant_id, t0):
    from booking_alerts.application.services.booking_store import BookingStore
    from booking_alerts.application.services.delivery_service import _due_repeats, _spawn_child
    from booking_alerts.infrastructure.persistence.database.models.alert_intent import IntentStatus
    from booking_alerts.infrastructure.persistence.repositories.alert_intent_repository import (
        AlertIntentRepository,
    )

    with Session() as s:
        bid = BookingStore(s).record_booking(restaurant_id=restaurant_id, now=t0).id
    root = _all_for_booking(Session, bid)[0]
    with Session() as s:
        token = "w"
        repo = AlertIntentRepository(s)
        repo.claim(root.id, token=token, now=t0, lease_seconds=120)
        repo.finish(root.id, token=token, now=t0, status=IntentStatus.SENT, sent_at=t0, attempts=1)
        s.commit()

    now = t0 + timedelta(seconds=31)
    due = _due_repeats(now)
    assert len(due) == 1
    schedule_id, expected = due[0]
    # deux workers ont lu la même échéance
    assert _spawn_child(schedule_id, expected, now) is not None
    assert _spawn_child(schedule_id, expected, now) is None
    assert len(_all_for_booking(Session, bid)) == 2


def test_provider_exception_counts_as_failed_attempt(Session, restaurant_id, t0):
    from booking_alerts.application.services.delivery_service import run_delivery_pass

    class Exploding:
        def send(self, messages):
            raise RuntimeError("boom")

    _register(Session, restaurant_id, "tablet-1", "tok-1", t0)
    iid = _system_intent(Session, restaurant_id, t0)
    r = run_delivery_pass(now=t0, provider=Exploding())
    assert r.retried == 1
    it = _get(Session, iid)
    assert it.attempts == 1
    assert "provider_error" in it.error


def test_deliver_outbox_task_runs_a_pass(Session, restaurant_id, push_provider, monkeypatch):
    from booking_alerts.workers.tasks import outbox_tasks
    import booking_alerts.application.services.delivery_service as svc

    monkeypatch.setattr(svc, "ExpoPushProvider", lambda: push_provider)
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    _register(Session, restaurant_id, "tablet-1", "tok-1", past)
    _system_intent(Session, restaurant_id, past)

    res = outbox_tasks.deliver_outbox.delay()
    assert res.get()["sent"] == 1
