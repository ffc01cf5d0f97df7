from __future__ import annotations
"""
server/booking_alerts/domain/errors.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Taxonomie des erreurs du pipeline d'alertes.

- TransientDeliveryError : hoquet fournisseur / réseau → retry jusqu'à max_attempts.
- PermanentAddressError  : adresse push invalide (device désinscrit) → adresse désactivée.
- NoRecipientsError      : aucun device actif pour le restaurant → intent `skipped`.

Les erreurs "Booking*" sont remontées par le Booking Store (mappées en 404/422 côté API).
"""

from typing import Any, Mapping, Optional


class DeliveryError(Exception):
    """Base des erreurs de livraison (porte le contexte utile aux logs)."""

    def __init__(self, message: str, *, context: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})


class TransientDeliveryError(DeliveryError):
    pass


class PermanentAddressError(DeliveryError):
    def __init__(self, message: str, *, push_address: str, context: Optional[Mapping[str, Any]] = None):
        super().__init__(message, context=context)
        self.push_address = push_address


class NoRecipientsError(DeliveryError):
    pass


class BookingNotFoundError(LookupError):
    def __init__(self, booking_id: Any):
        super().__init__(f"booking not found: {booking_id}")
        self.booking_id = booking_id


class InvalidTransitionError(ValueError):
    """Statut inconnu ou transition refusée par le Booking Store."""
