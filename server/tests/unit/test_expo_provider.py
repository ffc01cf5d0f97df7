import pytest
import requests
from types import SimpleNamespace

pytestmark = pytest.mark.unit


def _msgs(*addresses):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import PushMessage
    return [PushMessage(to=a, title="T", body="B", data={"bookingId": "b1"}, channel_id="booking-alerts-critical")
            for a in addresses]


def _response(status_code, body=None, bad_json=False):
    def _json():
        if bad_json:
            raise ValueError("no json")
        return body
    return SimpleNamespace(status_code=status_code, json=_json)


def test_send_success_maps_tickets_in_order(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    calls = {}
    def fake_post(url, json, headers, timeout):
        calls["url"] = url; calls["json"] = json; calls["headers"] = headers
        return _response(200, {"data": [{"status": "ok", "id": "r1"}, {"status": "ok", "id": "r2"}]})

    monkeypatch.setattr("requests.post", fake_post, raising=True)

    tickets = ExpoPushProvider("http://example.invalid/push", access_token="secret").send(_msgs("a", "b"))
    assert [(t.push_address, t.ok, t.receipt_id) for t in tickets] == [("a", True, "r1"), ("b", True, "r2")]
    assert calls["json"][0]["channelId"] == "booking-alerts-critical"
    assert calls["json"][0]["priority"] == "high"
    assert calls["headers"]["Authorization"] == "Bearer secret"


def test_device_not_registered_is_permanent(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    body = {"data": [
        {"status": "error", "message": '"a" is not a registered push notification recipient',
         "details": {"error": "DeviceNotRegistered"}},
        {"status": "error", "message": "Message rate exceeded", "details": {"error": "MessageRateExceeded"}},
    ]}
    monkeypatch.setattr("requests.post", lambda *a, **k: _response(200, body), raising=True)

    bad, throttled = ExpoPushProvider("http://example.invalid/push").send(_msgs("a", "b"))
    assert bad.ok is False and bad.permanent is True
    assert bad.error_code == "DeviceNotRegistered"
    assert throttled.ok is False and throttled.permanent is False


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_whole_chunk_fails_on_throttle_or_server_error(monkeypatch, status_code):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    monkeypatch.setattr("requests.post", lambda *a, **k: _response(status_code, {}), raising=True)

    tickets = ExpoPushProvider("http://example.invalid/push").send(_msgs("a", "b", "c"))
    assert len(tickets) == 3
    assert all(not t.ok and not t.permanent for t in tickets)
    assert tickets[0].error == f"http_{status_code}"


def test_request_level_error_and_bad_json(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    monkeypatch.setattr(
        "requests.post",
        lambda *a, **k: _response(400, {"errors": [{"code": "X", "message": "InvalidCredentials"}]}),
        raising=True,
    )
    (t,) = ExpoPushProvider("http://example.invalid/push").send(_msgs("a"))
    assert t.ok is False and t.error == "InvalidCredentials" and t.permanent is False

    monkeypatch.setattr("requests.post", lambda *a, **k: _response(200, bad_json=True), raising=True)
    (t,) = ExpoPushProvider("http://example.invalid/push").send(_msgs("a"))
    assert t.ok is False and t.error.startswith("invalid_json")


def test_network_error(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    def boom(*a, **k):
        raise requests.ConnectionError("net down")
    monkeypatch.setattr("requests.post", boom, raising=True)

    tickets = ExpoPushProvider("http://example.invalid/push").send(_msgs("a", "b"))
    assert [t.ok for t in tickets] == [False, False]
    assert tickets[0].error.startswith("network_error")


def test_messages_are_chunked(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    sizes = []
    def fake_post(url, json, headers, timeout):
        sizes.append(len(json))
        if len(sizes) == 2:
            return _response(502, {})
        return _response(200, {"data": [{"status": "ok", "id": m["to"]} for m in json]})

    monkeypatch.setattr("requests.post", fake_post, raising=True)

    tickets = ExpoPushProvider("http://example.invalid/push", chunk_size=2).send(_msgs("a", "b", "c", "d", "e"))
    assert sizes == [2, 2, 1]
    assert [t.ok for t in tickets] == [True, True, False, False, True]
    assert [t.push_address for t in tickets] == ["a", "b", "c", "d", "e"]


def test_missing_ticket_is_malformed(monkeypatch):
    from booking_alerts.infrastructure.notifications.providers.expo_provider import ExpoPushProvider

    monkeypatch.setattr("requests.post", lambda *a, **k: _response(200, {"data": [{"status": "ok", "id": "r1"}]}),
                        raising=True)
    first, second = ExpoPushProvider("http://example.invalid/push").send(_msgs("a", "b"))
    assert first.ok is True
    assert second.ok is False and second.error == "malformed_ticket"
