import uuid
from datetime import datetime, timezone

import pytest

pytestmark = pytest.mark.unit


def _snap(status, **kw):
    from booking_alerts.domain.policies import BookingSnapshot
    base = dict(
        id=kw.pop("id", uuid.UUID(int=1)),
        restaurant_id=uuid.UUID(int=2),
        status=status,
        guest_name="Alice",
        party_size=2,
        booking_time=datetime(2026, 10, 18, 19, 30, tzinfo=timezone.utc),
    )
    base.update(kw)
    return BookingSnapshot(**base)


def test_insert_as_pending_starts_chain():
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    assert classify_transition(None, _snap("pending")) is TransitionAction.START_CHAIN


def test_reentering_pending_starts_chain():
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    assert classify_transition(_snap("confirmed"), _snap("pending")) is TransitionAction.START_CHAIN


@pytest.mark.parametrize("status", ["confirmed", "declined_by_restaurant", "cancelled_by_restaurant", "completed", "no_show"])
def test_leaving_pending_stops_chain(status):
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    assert classify_transition(_snap("pending"), _snap(status)) is TransitionAction.STOP_CHAIN


def test_user_cancellation_stops_and_notifies():
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    got = classify_transition(_snap("pending"), _snap("cancelled_by_user"))
    assert got is TransitionAction.STOP_AND_NOTIFY_CANCELLED


def test_pending_modification_notifies_only_on_time_or_size():
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    before = _snap("pending")
    assert classify_transition(before, _snap("pending", party_size=4)) is TransitionAction.NOTIFY_MODIFIED
    assert classify_transition(before, _snap("pending", guest_name="Bob")) is TransitionAction.NONE


def test_handled_to_handled_is_noop():
    from booking_alerts.domain.policies import TransitionAction, classify_transition
    assert classify_transition(_snap("confirmed"), _snap("completed")) is TransitionAction.NONE
    assert classify_transition(None, _snap("confirmed")) is TransitionAction.NONE


def test_normalize_status():
    from booking_alerts.domain.errors import InvalidTransitionError
    from booking_alerts.domain.policies import normalize_status

    assert normalize_status("  Pending ") == "pending"
    with pytest.raises(InvalidTransitionError):
        normalize_status("accepted")
    with pytest.raises(InvalidTransitionError):
        normalize_status(None)


def test_preference_field_for():
    from booking_alerts.domain.policies import preference_field_for
    assert preference_field_for("new_booking") == "new_bookings"
    assert preference_field_for("booking_cancelled") == "booking_cancellations"
    assert preference_field_for("booking_modified") == "booking_modifications"
    assert preference_field_for("system_alert") is None
