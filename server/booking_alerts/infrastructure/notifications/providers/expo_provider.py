from __future__ import annotations
"""server/booking_alerts/infrastructure/notifications/providers/expo_provider.py
~~~~~~~~~~~~~~~~~~~~~~~~
ExpoPushProvider : envoi batché vers l'API push Expo (exp.host).

Contrat :
- send(messages) → une PushTicket par message, dans le même ordre.
- Un lot qui échoue en bloc (réseau, HTTP >= 500, 429) produit un ticket
  d'erreur transitoire pour chacun de ses messages.
- `DeviceNotRegistered` / "not a registered push notification" → erreur permanente
  pour l'adresse (à désactiver). InvalidCredentials n'est PAS lié à l'adresse.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from booking_alerts.core.config import settings

logger = logging.getLogger(__name__)

PERMANENT_ERROR_CODES = frozenset({"DeviceNotRegistered"})
_NOT_REGISTERED_HINT = "not a registered push notification"


@dataclass
class PushMessage:
    to: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: Optional[str] = "default"
    priority: str = "high"
    channel_id: Optional[str] = None

    def to_wire(self) -> dict:
        msg = {
            "to": self.to,
            "sound": self.sound,
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "priority": self.priority,
        }
        if self.channel_id:
            msg["channelId"] = self.channel_id
        return msg


@dataclass
class PushTicket:
    push_address: str
    ok: bool
    receipt_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    permanent: bool = False
    raw: Optional[dict] = None


def is_permanent_error(error_code: Optional[str], message: Optional[str]) -> bool:
    if error_code in PERMANENT_ERROR_CODES:
        return True
    return bool(message and _NOT_REGISTERED_HINT in message.lower())


def _ticket_from_wire(address: str, raw: Any) -> PushTicket:
    if not isinstance(raw, dict):
        return PushTicket(push_address=address, ok=False, error="malformed_ticket", raw=None)
    if raw.get("status") == "ok":
        return PushTicket(push_address=address, ok=True, receipt_id=raw.get("id"), raw=raw)
    details = raw.get("details") or {}
    code = details.get("error") if isinstance(details, dict) else None
    message = raw.get("message") or code or "push_error"
    return PushTicket(
        push_address=address,
        ok=False,
        error=message,
        error_code=code,
        permanent=is_permanent_error(code, message),
        raw=raw,
    )


class ExpoPushProvider:
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        chunk_size: Optional[int] = None,
    ):
        self.url = url or settings.PUSH_PROVIDER_URL
        if not self.url:
            raise ValueError("Push provider URL must be provided")
        self.access_token = access_token if access_token is not None else settings.PUSH_ACCESS_TOKEN
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS
        self.chunk_size = max(1, int(chunk_size or settings.PUSH_MAX_MESSAGES_PER_REQUEST))

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send(self, messages: Sequence[PushMessage]) -> List[PushTicket]:
        tickets: List[PushTicket] = []
        for start in range(0, len(messages), self.chunk_size):
            tickets.extend(self._send_chunk(messages[start:start + self.chunk_size]))
        return tickets

    def _send_chunk(self, chunk: Sequence[PushMessage]) -> List[PushTicket]:
        try:
            r = requests.post(
                self.url,
                json=[m.to_wire() for m in chunk],
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("push provider unreachable: %s", exc)
            return self._chunk_failed(chunk, f"network_error: {exc}")

        if r.status_code == 429 or r.status_code >= 500:
            return self._chunk_failed(chunk, f"http_{r.status_code}")

        try:
            body = r.json()
        except ValueError:
            return self._chunk_failed(chunk, f"invalid_json (http_{r.status_code})")

        if r.status_code >= 400:
            # ex: InvalidCredentials, PUSH_TOO_MANY_EXPERIENCE_IDS… → le lot entier échoue
            errors = body.get("errors") if isinstance(body, dict) else None
            reason = (errors[0].get("message") if errors else None) or f"http_{r.status_code}"
            return self._chunk_failed(chunk, reason)

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            return self._chunk_failed(chunk, "missing_ticket_data")

        tickets = []
        for i, msg in enumerate(chunk):
            raw = data[i] if i < len(data) else None
            tickets.append(_ticket_from_wire(msg.to, raw))
        return tickets

    @staticmethod
    def _chunk_failed(chunk: Sequence[PushMessage], reason: str) -> List[PushTicket]:
        return [PushTicket(push_address=m.to, ok=False, error=reason) for m in chunk]
