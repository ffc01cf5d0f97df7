# server/booking_alerts/infrastructure/messaging/events.py
from __future__ import annotations
"""
Événements du change feed des réservations (simples dataclasses).
Minimal et indépendant de l'ORM : sérialisé en JSON sur `bookings:<restaurant_id>`.
"""
import json
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional


def channel_for(restaurant_id: Any) -> str:
    return f"bookings:{restaurant_id}"


@dataclass(frozen=True)
class BookingChanged:
    booking_id: str
    restaurant_id: str
    status: str
    old_status: Optional[str]
    occurred_at: str
    event: str = "UPDATE"

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BookingChanged":
        return cls(
            booking_id=str(data["booking_id"]),
            restaurant_id=str(data["restaurant_id"]),
            status=str(data["status"]),
            old_status=data.get("old_status"),
            occurred_at=str(data.get("occurred_at") or ""),
            event=str(data.get("event") or "UPDATE"),
        )
