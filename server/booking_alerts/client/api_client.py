from __future__ import annotations
"""server/booking_alerts/client/api_client.py
~~~~~~~~~~~~~~~~~~~~~~~~
Client HTTP (httpx) de la tablette vers l'API /api/v1.
Les erreurs HTTP remontent (raise_for_status) ; c'est l'appelant qui décide
de les logger (fire-and-forget) ou de les propager.
"""

from typing import Any, Optional

import httpx

from booking_alerts.core.config import settings


class BookingApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, json: dict) -> dict:
        r = self._client.post(path, json=json)
        r.raise_for_status()
        return r.json()

    # --- Booking Store --------------------------------------------------------

    def update_status(self, booking_id: Any, status: str, note: Optional[str] = None) -> dict:
        body: dict = {"status": status}
        if note is not None:
            body["note"] = note
        return self._post(f"/bookings/{booking_id}/status", body)

    def get_status(self, booking_id: Any) -> str:
        r = self._client.get(f"/bookings/{booking_id}/status")
        r.raise_for_status()
        return r.json()["status"]

    def list_bookings(self, restaurant_id: Any, status: str = "pending") -> list[dict]:
        r = self._client.get("/bookings", params={"restaurant_id": str(restaurant_id), "status": status})
        r.raise_for_status()
        return r.json()

    # --- Device Registry ------------------------------------------------------

    def register_device(
        self,
        *,
        restaurant_id: Any,
        device_id: str,
        push_address: str,
        device_name: Optional[str] = None,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> dict:
        return self._post("/devices", {
            "restaurant_id": str(restaurant_id),
            "device_id": device_id,
            "push_address": push_address,
            "device_name": device_name,
            "platform": platform,
            "app_version": app_version,
        })

    def heartbeat(self, restaurant_id: Any, push_address: str) -> dict:
        return self._post("/devices/heartbeat", {
            "restaurant_id": str(restaurant_id),
            "push_address": push_address,
        })
