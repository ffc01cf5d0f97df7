# server/booking_alerts/infrastructure/messaging/change_feed.py
from __future__ import annotations
"""
Publication du change feed (Redis pub/sub) après chaque écriture de réservation.

Fire-and-forget : un échec est loggé, jamais propagé (la source de vérité reste
la base ; le feed n'est qu'un déclencheur côté client).
Désactivé tant que CHANGE_FEED_URL n'est pas défini.
"""

import logging
from typing import Optional

import redis

from booking_alerts.core.config import settings
from booking_alerts.infrastructure.messaging.events import BookingChanged, channel_for

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def _get_client() -> Optional[redis.Redis]:
    global _client
    if not settings.CHANGE_FEED_URL:
        return None
    if _client is None:
        _client = redis.Redis.from_url(settings.CHANGE_FEED_URL, socket_timeout=2)
    return _client


def publish_booking_change(event: BookingChanged) -> bool:
    client = _get_client()
    if client is None:
        return False
    try:
        client.publish(channel_for(event.restaurant_id), event.to_json())
        return True
    except redis.RedisError:
        logger.warning(
            "change feed publish failed",
            extra={"booking_id": event.booking_id, "restaurant_id": event.restaurant_id},
            exc_info=True,
        )
        return False
