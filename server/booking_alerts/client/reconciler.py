from __future__ import annotations
"""server/booking_alerts/client/reconciler.py
~~~~~~~~~~~~~~~~~~~~~~~~
Diff des snapshots successifs "réservations pending" → start / stop sur le registre.

Premier snapshot du process : aucun start (les réservations déjà pending au
lancement ne re-sonnent pas), mais les stops restent appliqués et
`previous` est toujours mis à jour.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from booking_alerts.domain.policies import PENDING

logger = logging.getLogger(__name__)


def _get(item: Any, *names: str) -> Any:
    for n in names:
        if isinstance(item, Mapping):
            if n in item:
                return item[n]
        elif hasattr(item, n):
            return getattr(item, n)
    return None


@dataclass(frozen=True)
class ReconcileResult:
    started: list[str] = field(default_factory=list)
    stopped: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)
    first_snapshot: bool = False


class AlertReconciler:
    def __init__(self, registry: Any):
        self.registry = registry
        self._previous: set[str] = set()
        self._seen_snapshot = False
        self._lock = threading.Lock()

    @property
    def previous_pending(self) -> frozenset[str]:
        return frozenset(self._previous)

    def reconcile(self, bookings: Iterable[Any]) -> ReconcileResult:
        """`bookings` : mappings ou objets exposant id/status (+ guest_name, party_size, booking_time)."""
        details: dict[str, Any] = {}
        for b in bookings:
            if _get(b, "status") == PENDING:
                details[str(_get(b, "id", "booking_id", "bookingId"))] = b
        current = set(details)

        with self._lock:
            first = not self._seen_snapshot
            newly = current - self._previous
            gone = self._previous - current
            self._previous = current
            self._seen_snapshot = True

        started: list[str] = []
        for bid in sorted(gone):
            self.registry.stop(bid)

        if first:
            if newly:
                logger.info("cold start: %d pending booking(s) not alerted", len(newly))
        else:
            for bid in sorted(newly):
                b = details[bid]
                self.registry.start(
                    bid,
                    _get(b, "guest_name", "guestName"),
                    _get(b, "party_size", "partySize"),
                    _get(b, "booking_time", "bookingTime"),
                )
                started.append(bid)

        return ReconcileResult(
            started=started,
            stopped=sorted(gone),
            suppressed=sorted(newly) if first else [],
            first_snapshot=first,
        )

    def reset(self) -> None:
        """Changement de restaurant : le prochain snapshot redevient le premier."""
        with self._lock:
            self._previous = set()
            self._seen_snapshot = False
