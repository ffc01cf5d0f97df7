from __future__ import annotations
"""server/booking_alerts/client/change_feed.py
~~~~~~~~~~~~~~~~~~~~~~~~
Abonnement Redis pub/sub au canal `bookings:<restaurant_id>` dans un thread,
chaque événement est passé au BookingStatusMonitor (et éventuellement à un
callback, p.ex. pour relancer une relève des pending).
"""

import json
import logging
import threading
from typing import Any, Callable, Optional

import redis

from booking_alerts.core.config import settings
from booking_alerts.infrastructure.messaging.events import BookingChanged, channel_for

logger = logging.getLogger(__name__)


class RedisChangeFeedSubscriber:
    def __init__(
        self,
        restaurant_id: Any,
        monitor: Any,
        *,
        url: Optional[str] = None,
        on_event: Optional[Callable[[BookingChanged], None]] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.channel = channel_for(restaurant_id)
        self.monitor = monitor
        self.on_event = on_event
        self._client = client or redis.Redis.from_url(url or settings.CHANGE_FEED_URL or settings.REDIS_URL)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def handle_message(self, message: Optional[dict]) -> Optional[BookingChanged]:
        if not message or message.get("type") != "message":
            return None
        raw = message.get("data")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            event = BookingChanged.from_mapping(json.loads(raw))
        except (TypeError, ValueError, KeyError):
            logger.warning("change feed: malformed event on %s", self.channel)
            return None
        self.monitor.on_change(event)
        if self.on_event is not None:
            self.on_event(event)
        return event

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="change-feed", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            try:
                pubsub.subscribe(self.channel)
                while not self._stop.is_set():
                    self.handle_message(pubsub.get_message(timeout=1.0))
            except redis.RedisError:
                logger.warning("change feed: connection lost, resubscribing", exc_info=True)
                self._stop.wait(2.0)
            except Exception:
                logger.exception("change feed: handler error")
            finally:
                pubsub.close()
