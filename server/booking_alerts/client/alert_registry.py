from __future__ import annotations
"""server/booking_alerts/client/alert_registry.py
~~~~~~~~~~~~~~~~~~~~~~~~
Registre d'alertes de la tablette (un par process, init()/shutdown() explicites).

- start(id, …) / stop(id) idempotents.
- L'ensemble actif possède UNE ressource partagée : acquise au premier start,
  libérée au dernier stop, exactement une fois. Vérifier le vide puis acquérir /
  libérer se fait sous un seul verrou.
- Tant que l'ensemble est non vide, un ticker ré-affiche l'alerte toutes les
  CLIENT_REDISPLAY_SECONDS (et retente l'acquisition si tous les canaux ont échoué).
- Un stop est mémorisé (mémoire bornée) : un push tardif pour une réservation
  déjà traitée localement ne ré-arme pas l'alerte. Un start explicite l'efface.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from booking_alerts.core.config import settings
from booking_alerts.core.utils.datetime import utcnow
from booking_alerts.client.alert_channels import AlertChannel

logger = logging.getLogger(__name__)

PRIMARY_CHANNEL = "looped_audio"
DEGRADED_ADVICE = (
    "Booking alerts are not playing a looping sound on this device. "
    "Disable battery optimisation for the app and check that notification sound "
    "and Do Not Disturb access are allowed."
)
NO_CHANNEL_ADVICE = (
    "No alert channel could be started on this device. "
    "Check sound, notification and vibration permissions."
)


@dataclass
class ClientAlertEntry:
    booking_id: str
    guest_name: Optional[str] = None
    party_size: Optional[int] = None
    booking_time: Any = None
    started_at: datetime = field(default_factory=utcnow)


class _Ticker(threading.Thread):
    def __init__(self, interval: float, fn: Callable[["_Ticker"], None]):
        super().__init__(name="alert-redisplay", daemon=True)
        self.interval = interval
        self.fn = fn
        self.cancelled = threading.Event()

    def run(self) -> None:
        while not self.cancelled.wait(self.interval):
            self.fn(self)

    def cancel(self) -> None:
        self.cancelled.set()


class AlertRegistry:
    def __init__(
        self,
        channels: Sequence[AlertChannel],
        *,
        redisplay_seconds: Optional[float] = None,
        resolved_memory: Optional[int] = None,
    ):
        self._channels = list(channels)
        self._redisplay_seconds = float(redisplay_seconds or settings.CLIENT_REDISPLAY_SECONDS)
        self._resolved_memory = int(resolved_memory or settings.CLIENT_RESOLVED_MEMORY)
        self._resolved: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.RLock()
        self._active: dict[str, ClientAlertEntry] = {}
        self._channel: Optional[AlertChannel] = None
        self._ticker: Optional[_Ticker] = None
        self._last_errors: dict[str, str] = {}
        self._closed = False

    # --- Transitions ---------------------------------------------------------

    def start(
        self,
        booking_id: Any,
        guest_name: Optional[str] = None,
        party_size: Optional[int] = None,
        booking_time: Any = None,
    ) -> bool:
        """True si la réservation passe de None à Alerting."""
        bid = str(booking_id)
        with self._lock:
            if self._closed or bid in self._active:
                return False
            self._resolved.pop(bid, None)
            was_empty = not self._active
            self._active[bid] = ClientAlertEntry(bid, guest_name, party_size, booking_time)
            if was_empty:
                self._acquire()
                self._start_ticker()
            logger.info("alert started", extra={"booking_id": bid, "active": len(self._active)})
            return True

    def stop(self, booking_id: Any) -> bool:
        """True si la réservation était en alerte."""
        bid = str(booking_id)
        with self._lock:
            self._remember_resolved(bid)
            if self._active.pop(bid, None) is None:
                return False
            if not self._active:
                self._release()
            elif self._channel is not None:
                self._dismiss(self._channel, bid)
            logger.info("alert stopped", extra={"booking_id": bid, "active": len(self._active)})
            return True

    def stop_all(self) -> int:
        with self._lock:
            n = len(self._active)
            self._active.clear()
            if n:
                self._release()
            return n

    # --- Lecture -------------------------------------------------------------

    def is_active(self, booking_id: Any) -> bool:
        with self._lock:
            return str(booking_id) in self._active

    def was_resolved(self, booking_id: Any) -> bool:
        """True si la réservation a été stoppée localement depuis son dernier start."""
        with self._lock:
            return str(booking_id) in self._resolved

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._active)

    @property
    def resource_held(self) -> bool:
        with self._lock:
            return self._channel is not None

    def health(self) -> dict:
        with self._lock:
            count = len(self._active)
            current = self._channel.name if self._channel is not None else None
        degraded = count > 0 and current != PRIMARY_CHANNEL
        advice = None
        if degraded:
            advice = NO_CHANNEL_ADVICE if current is None else DEGRADED_ADVICE
        return {
            "active_alert_count": count,
            "current_fallback_channel": current,
            "degraded": degraded,
            "advice": advice,
        }

    def shutdown(self, timeout: float = 1.0) -> None:
        with self._lock:
            ticker = self._ticker
            self.stop_all()
            self._closed = True
        # hors verrou : un tick en cours attend self._lock
        if ticker is not None and ticker is not threading.current_thread():
            ticker.join(timeout)

    # --- Ressource partagée (toujours sous self._lock) -------------------------

    def _acquire(self) -> None:
        entries = list(self._active.values())
        for ch in self._channels:
            result = ch.acquire(entries)
            if result.ok:
                self._channel = ch
                self._last_errors.pop(ch.name, None)
                if ch.name != PRIMARY_CHANNEL:
                    logger.warning("alert running on fallback channel %s", ch.name)
                return
            self._last_errors[ch.name] = result.error or "unknown"
            logger.warning("alert channel %s unavailable: %s", ch.name, result.error)
        self._channel = None
        logger.error("no alert channel available, alert tracked without output")

    def _release(self) -> None:
        ch, self._channel = self._channel, None
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
        if ch is not None:
            try:
                ch.release()
            except Exception:
                logger.exception("alert channel %s release failed", ch.name)

    def _dismiss(self, ch: AlertChannel, bid: str) -> None:
        try:
            ch.dismiss(bid)
        except Exception:
            logger.exception("alert channel %s dismiss failed", ch.name, extra={"booking_id": bid})

    def _remember_resolved(self, bid: str) -> None:
        self._resolved[bid] = None
        self._resolved.move_to_end(bid)
        while len(self._resolved) > self._resolved_memory:
            self._resolved.popitem(last=False)

    def _start_ticker(self) -> None:
        ticker = _Ticker(self._redisplay_seconds, self._tick)
        self._ticker = ticker
        ticker.start()

    def _tick(self, ticker: _Ticker) -> None:
        with self._lock:
            if ticker is not self._ticker or not self._active:
                ticker.cancel()
                return
            if self._channel is None:
                self._acquire()
                return
            self._channel.redisplay(list(self._active.values()))


# ──────────────────────────────────────────────────────────────────────────────
# Instance process-wide
# ──────────────────────────────────────────────────────────────────────────────

_registry: Optional[AlertRegistry] = None
_registry_lock = threading.Lock()


def init(channels: Sequence[AlertChannel], **kwargs: Any) -> AlertRegistry:
    global _registry
    with _registry_lock:
        if _registry is not None:
            return _registry
        _registry = AlertRegistry(channels, **kwargs)
        return _registry


def get_registry() -> AlertRegistry:
    if _registry is None:
        raise RuntimeError("alert registry not initialised; call init() first")
    return _registry


def shutdown() -> None:
    global _registry
    with _registry_lock:
        if _registry is not None:
            _registry.shutdown()
        _registry = None
