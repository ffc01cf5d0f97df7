from __future__ import annotations
"""server/booking_alerts/client/backends.py
~~~~~~~~~~~~~~~~~~~~~~~~
Contrats des sorties physiques de la tablette (audio, notifications locales, vibreur).
L'application hôte fournit les implémentations natives ; les tests, des fakes.
"""

from typing import Optional, Protocol, Sequence


class AudioOutput(Protocol):
    def load(self, sound: str, *, volume: float, loop: bool, bypass_silent_mode: bool) -> None: ...

    def play(self) -> None: ...

    def stop(self) -> None: ...

    def unload(self) -> None: ...


class LocalNotifier(Protocol):
    def show(
        self,
        notification_id: str,
        *,
        title: str,
        body: str,
        sound: Optional[str] = None,
        data: Optional[dict] = None,
    ) -> None: ...

    def cancel(self, notification_id: str) -> None: ...


class Vibrator(Protocol):
    def vibrate(self, pattern: Sequence[int]) -> None: ...

    def cancel(self) -> None: ...
