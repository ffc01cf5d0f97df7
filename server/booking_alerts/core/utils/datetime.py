# server/booking_alerts/core/utils/datetime.py
"""server/booking_alerts/core/utils/datetime.py
~~~~~~~~~~~~~~~~~~~~~~~~
Utilitaires pour la gestion des dates et heures.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise un datetime en UTC timezone-aware (tolère None).
    - si naïf: on suppose UTC
    - sinon: conversion UTC
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def age_in_seconds(dt: Optional[datetime], *, now: Optional[datetime] = None) -> Optional[float]:
    """Retourne l’âge (en secondes) d’un datetime UTC, ou None si absent."""
    if not dt:
        return None
    ref = as_utc(now) or utcnow()
    return (ref - as_utc(dt)).total_seconds()
