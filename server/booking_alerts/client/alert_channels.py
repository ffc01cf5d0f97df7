from __future__ import annotations
"""server/booking_alerts/client/alert_channels.py
~~~~~~~~~~~~~~~~~~~~~~~~
Canaux d'alerte, essayés dans l'ordre par le registre :

    LoopedAudioChannel → RescheduledNotificationChannel → VibrationOnlyChannel

Chaque canal renvoie un ChannelResult (pas d'exception remontée) ;
le premier succès détient la ressource partagée jusqu'au dernier Stop.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Protocol, Sequence

from booking_alerts.client.backends import AudioOutput, LocalNotifier, Vibrator

if TYPE_CHECKING:  # pragma: no cover
    from booking_alerts.client.alert_registry import ClientAlertEntry

logger = logging.getLogger(__name__)

ALERT_SOUND = "booking_alert"
VIBRATION_PATTERN = (0, 500, 500, 500, 500, 500)
NEW_BOOKING_TITLE = "🎉 New Booking Request!"


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    ok: bool
    error: Optional[str] = None


class AlertChannel(Protocol):
    name: str

    def acquire(self, entries: Sequence["ClientAlertEntry"]) -> ChannelResult: ...

    def redisplay(self, entries: Sequence["ClientAlertEntry"]) -> None: ...

    def dismiss(self, booking_id: str) -> None: ...

    def release(self) -> None: ...


def notification_id_for(booking_id: str) -> str:
    return f"booking-{booking_id}"


def _body(entry: "ClientAlertEntry") -> str:
    size = entry.party_size or 0
    parts = [entry.guest_name or "Guest", f"{size} {'guest' if size == 1 else 'guests'}"]
    if entry.booking_time:
        parts.append(str(entry.booking_time))
    return " • ".join(parts)


def _show_all(
    notifier: LocalNotifier,
    entries: Iterable["ClientAlertEntry"],
    shown: set[str],
    *,
    sound: Optional[str],
) -> None:
    # chaque id rejoint `shown` dès qu'il est posté, même si la suite échoue
    for e in entries:
        nid = notification_id_for(e.booking_id)
        notifier.show(
            nid,
            title=NEW_BOOKING_TITLE,
            body=_body(e),
            sound=sound,
            data={"bookingId": e.booking_id, "type": "booking_alert"},
        )
        shown.add(nid)


def _cancel(notifier: LocalNotifier, shown: set[str], ids: Iterable[str], *, channel: str) -> None:
    for nid in sorted(ids):
        shown.discard(nid)
        try:
            notifier.cancel(nid)
        except Exception:
            logger.warning("%s: cancel %s failed", channel, nid, exc_info=True)


class LoopedAudioChannel:
    """Son en boucle au volume max, mode silencieux / DND contourné."""
    name = "looped_audio"

    def __init__(self, audio: AudioOutput, notifier: Optional[LocalNotifier] = None, *, sound: str = ALERT_SOUND):
        self.audio = audio
        self.notifier = notifier
        self.sound = sound
        self._shown: set[str] = set()

    def acquire(self, entries):
        try:
            self.audio.load(self.sound, volume=1.0, loop=True, bypass_silent_mode=True)
            self.audio.play()
        except Exception as exc:  # backend natif : toute erreur = canal indisponible
            self._safe_unload()
            return ChannelResult(self.name, False, str(exc) or exc.__class__.__name__)
        self.redisplay(entries)
        return ChannelResult(self.name, True)

    def redisplay(self, entries):
        if self.notifier is None:
            return
        try:
            _show_all(self.notifier, entries, self._shown, sound=None)
        except Exception:
            logger.warning("looped_audio: local notification failed", exc_info=True)

    def dismiss(self, booking_id):
        """Le son continue pour les autres réservations ; seule la notification part."""
        nid = notification_id_for(booking_id)
        if self.notifier is not None and nid in self._shown:
            _cancel(self.notifier, self._shown, [nid], channel=self.name)

    def release(self):
        try:
            self.audio.stop()
        finally:
            self._safe_unload()
            if self.notifier is not None:
                _cancel(self.notifier, self._shown, list(self._shown), channel=self.name)

    def _safe_unload(self):
        try:
            self.audio.unload()
        except Exception:
            logger.warning("looped_audio: unload failed", exc_info=True)


class RescheduledNotificationChannel:
    """Notifications locales portant un son, re-postées à chaque tick."""
    name = "rescheduled_notification"

    def __init__(self, notifier: LocalNotifier, *, sound: str = ALERT_SOUND):
        self.notifier = notifier
        self.sound = sound
        self._shown: set[str] = set()

    def acquire(self, entries):
        try:
            _show_all(self.notifier, entries, self._shown, sound=self.sound)
        except Exception as exc:
            # canal non retenu : le registre n'appellera pas release()
            self.release()
            return ChannelResult(self.name, False, str(exc) or exc.__class__.__name__)
        return ChannelResult(self.name, True)

    def redisplay(self, entries):
        try:
            _show_all(self.notifier, entries, self._shown, sound=self.sound)
        except Exception:
            logger.warning("rescheduled_notification: redisplay failed", exc_info=True)

    def dismiss(self, booking_id):
        nid = notification_id_for(booking_id)
        if nid in self._shown:
            _cancel(self.notifier, self._shown, [nid], channel=self.name)

    def release(self):
        _cancel(self.notifier, self._shown, list(self._shown), channel=self.name)


class VibrationOnlyChannel:
    name = "vibration_only"

    def __init__(self, vibrator: Vibrator, *, pattern: Sequence[int] = VIBRATION_PATTERN):
        self.vibrator = vibrator
        self.pattern = tuple(pattern)

    def acquire(self, entries):
        try:
            self.vibrator.vibrate(self.pattern)
        except Exception as exc:
            return ChannelResult(self.name, False, str(exc) or exc.__class__.__name__)
        return ChannelResult(self.name, True)

    def redisplay(self, entries):
        try:
            self.vibrator.vibrate(self.pattern)
        except Exception:
            logger.warning("vibration_only: vibrate failed", exc_info=True)

    def dismiss(self, booking_id):
        pass

    def release(self):
        self.vibrator.cancel()


def default_channels(
    *,
    audio: Optional[AudioOutput] = None,
    notifier: Optional[LocalNotifier] = None,
    vibrator: Optional[Vibrator] = None,
) -> list[AlertChannel]:
    """Ordre de repli fixe ; un backend absent retire simplement son canal."""
    channels: list[AlertChannel] = []
    if audio is not None:
        channels.append(LoopedAudioChannel(audio, notifier))
    if notifier is not None:
        channels.append(RescheduledNotificationChannel(notifier))
    if vibrator is not None:
        channels.append(VibrationOnlyChannel(vibrator))
    return channels
