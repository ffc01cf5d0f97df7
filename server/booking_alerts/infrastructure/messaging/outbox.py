# server/booking_alerts/infrastructure/messaging/outbox.py
from __future__ import annotations
"""
Politique de retry de l'outbox d'alertes :
- grille de backoff (OUTBOX_BACKOFFS, liste ou CSV "30,60,120")
- jitter symétrique ±OUTBOX_JITTER_PCT
- next_attempt_at(attempts_done, now) → prochaine date de tentative

La grille est indexée par le nombre de tentatives déjà faites (clamp à la fin).
"""

import math
import random
from datetime import datetime, timedelta
from typing import Any, Optional

from booking_alerts.core.config import settings
from booking_alerts.core.utils.datetime import as_utc, utcnow

DEFAULT_BACKOFFS = [30, 60, 120]


# ──────────────────────────────────────────────────────────────────────────────
# Helpers backoff + jitter
# ──────────────────────────────────────────────────────────────────────────────

def _parse_backoffs(raw: Any = None) -> list[int]:
    """
    Accepte une list[int] (pydantic) OU un CSV "30,60,120".
    Fallback par défaut : [30, 60, 120]
    """
    if raw is None:
        raw = settings.OUTBOX_BACKOFFS
    if isinstance(raw, (list, tuple)):
        try:
            values = [int(x) for x in raw]
        except (TypeError, ValueError):
            return list(DEFAULT_BACKOFFS)
        return values or list(DEFAULT_BACKOFFS)
    if not raw:
        return list(DEFAULT_BACKOFFS)
    try:
        values = [int(x.strip()) for x in str(raw).split(",") if x.strip()]
    except ValueError:
        return list(DEFAULT_BACKOFFS)
    return values or list(DEFAULT_BACKOFFS)


def _jitter(seconds: int, pct: float) -> int:
    """Applique un jitter symétrique ±pct, borne à [0..0.9]."""
    pct = max(0.0, min(float(pct), 0.9))
    low = seconds * (1.0 - pct)
    high = seconds * (1.0 + pct)
    return int(math.ceil(random.uniform(low, high)))


# ──────────────────────────────────────────────────────────────────────────────
# RetryPolicy
# ──────────────────────────────────────────────────────────────────────────────

class RetryPolicy:
    def __init__(self, backoffs: Any = None, jitter_pct: Optional[float] = None):
        self._backoffs: list[int] = _parse_backoffs(backoffs)
        self._jitter_pct: float = float(
            settings.OUTBOX_JITTER_PCT if jitter_pct is None else jitter_pct
        )

    def delay_for(self, attempts_done: int) -> int:
        # index dans la grille (0 après la 1ère tentative, clamp à la fin)
        idx = min(max(attempts_done - 1, 0), len(self._backoffs) - 1)
        return _jitter(self._backoffs[idx], self._jitter_pct)

    def next_attempt_at(self, attempts_done: int, *, now: Optional[datetime] = None) -> datetime:
        now = as_utc(now) if now else utcnow()
        return now + timedelta(seconds=self.delay_for(attempts_done))
