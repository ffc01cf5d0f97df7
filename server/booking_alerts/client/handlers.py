from __future__ import annotations
"""server/booking_alerts/client/handlers.py
~~~~~~~~~~~~~~~~~~~~~~~~
Les déclencheurs qui aboutissent tous au même stop(id) idempotent :

- BookingActions        : accept / decline de l'utilisateur (stop local d'abord,
                          puis mise à jour serveur en fire-and-forget)
- PushPayloadHandler    : payload reçu d'une notification push
- BookingStatusMonitor  : événement du change feed
- PendingBookingsPoller : relève périodique → AlertReconciler
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Mapping, Optional

from booking_alerts.domain.policies import PENDING
from booking_alerts.infrastructure.messaging.events import BookingChanged

logger = logging.getLogger(__name__)

RESOLVING_KINDS = frozenset({"booking_cancelled"})
STARTING_KINDS = frozenset({"new_booking", "urgent_booking"})


class BookingActions:
    def __init__(self, registry: Any, api_client: Any, *, executor: Optional[ThreadPoolExecutor] = None):
        self.registry = registry
        self.api = api_client
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="booking-actions")

    def accept(self, booking_id: Any) -> Future:
        return self._resolve(booking_id, "confirmed")

    def decline(self, booking_id: Any, note: Optional[str] = None) -> Future:
        return self._resolve(booking_id, "declined_by_restaurant", note)

    def _resolve(self, booking_id: Any, status: str, note: Optional[str] = None) -> Future:
        bid = str(booking_id)
        self.registry.stop(bid)
        fut = self._executor.submit(self.api.update_status, bid, status, note)
        fut.add_done_callback(lambda f: self._log_outcome(f, bid, status))
        return fut

    @staticmethod
    def _log_outcome(fut: Future, booking_id: str, status: str) -> None:
        exc = fut.exception()
        if exc is not None:
            logger.error(
                "status update failed: %s", exc,
                extra={"booking_id": booking_id, "status": status},
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class PushPayloadHandler:
    def __init__(self, registry: Any):
        self.registry = registry

    def handle(self, data: Mapping[str, Any]) -> Optional[str]:
        """Retourne "start", "stop" ou None (payload ignoré)."""
        bid = data.get("bookingId")
        if not bid:
            return None
        kind = data.get("type")
        status = data.get("status")

        if kind in RESOLVING_KINDS or (status is not None and status != PENDING):
            self.registry.stop(bid)
            return "stop"
        if kind in STARTING_KINDS:
            # push tardif (répétition en vol, retry) d'une réservation déjà traitée ici
            if self.registry.was_resolved(bid):
                logger.info("late booking push ignored", extra={"booking_id": str(bid), "kind": kind})
                return None
            self.registry.start(bid, data.get("guestName"), data.get("partySize"), data.get("bookingTime"))
            return "start"
        return None


class BookingStatusMonitor:
    def __init__(self, registry: Any):
        self.registry = registry

    def on_change(self, event: BookingChanged | Mapping[str, Any]) -> bool:
        """True si l'événement a déclenché un stop."""
        if not isinstance(event, BookingChanged):
            event = BookingChanged.from_mapping(event)
        if event.status == PENDING:
            return False
        self.registry.stop(event.booking_id)
        return True


class PendingBookingsPoller:
    def __init__(self, api_client: Any, reconciler: Any, restaurant_id: Any):
        self.api = api_client
        self.reconciler = reconciler
        self.restaurant_id = restaurant_id

    def poll_once(self):
        try:
            bookings = self.api.list_bookings(self.restaurant_id, PENDING)
        except Exception:
            logger.warning("pending bookings fetch failed", extra={"restaurant_id": str(self.restaurant_id)}, exc_info=True)
            return None
        return self.reconciler.reconcile(bookings)
