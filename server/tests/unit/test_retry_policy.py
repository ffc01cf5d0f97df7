from datetime import datetime, timezone

import pytest

pytestmark = pytest.mark.unit


def test_parse_backoffs_variants():
    from booking_alerts.infrastructure.messaging.outbox import DEFAULT_BACKOFFS, _parse_backoffs

    assert _parse_backoffs("10, 20,40") == [10, 20, 40]
    assert _parse_backoffs([5, "7"]) == [5, 7]
    assert _parse_backoffs("") == DEFAULT_BACKOFFS
    assert _parse_backoffs("a,b") == DEFAULT_BACKOFFS
    assert _parse_backoffs([]) == DEFAULT_BACKOFFS


def test_jitter_stays_within_bounds():
    from booking_alerts.infrastructure.messaging.outbox import _jitter

    for _ in range(200):
        v = _jitter(100, 0.2)
        assert 80 <= v <= 120
    # pct borné à 0.9
    for _ in range(50):
        assert _jitter(100, 5.0) >= 10


def test_delay_grid_is_clamped_to_last_value():
    from booking_alerts.infrastructure.messaging.outbox import RetryPolicy

    p = RetryPolicy(backoffs="30,60,120", jitter_pct=0)
    assert [p.delay_for(n) for n in (1, 2, 3, 9)] == [30, 60, 120, 120]
    assert p.delay_for(0) == 30


def test_next_attempt_at_is_after_now():
    from booking_alerts.infrastructure.messaging.outbox import RetryPolicy

    now = datetime(2026, 10, 18, 19, 0, tzinfo=timezone.utc)
    p = RetryPolicy(backoffs=[30], jitter_pct=0.2)
    when = p.next_attempt_at(1, now=now)
    assert 24 <= (when - now).total_seconds() <= 36
