from __future__ import annotations
"""server/booking_alerts/core/config.py
~~~~~~~~~~~~~~~~~~~~~~~~
Paramètres (pydantic-settings).
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://postgres:postgres@db:5432/booking_alerts"
    DB_CONNECT_TIMEOUT: int = Field(5, env="DB_CONNECT_TIMEOUT")
    REDIS_URL: str = "redis://redis:6379/0"
    # Flux de changements (pub/sub Redis). None = pas de publication.
    CHANGE_FEED_URL: Optional[str] = None
    CORS_ALLOW_ORIGINS: Optional[str] = None

    # Fournisseur push (API Expo par défaut)
    PUSH_PROVIDER_URL: str = "https://exp.host/--/api/v2/push/send"
    PUSH_ACCESS_TOKEN: Optional[str] = None
    PUSH_TIMEOUT_SECONDS: float = 10.0
    PUSH_MAX_MESSAGES_PER_REQUEST: int = 100
    PUSH_CHANNEL_ID: str = "booking-alerts-critical"
    PUSH_SOUND: str = "default"

    # Outbox / worker
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 3
    OUTBOX_BACKOFFS: str = "30,60,120"
    OUTBOX_JITTER_PCT: float = 0.2
    OUTBOX_CLAIM_LEASE_SECONDS: int = 120
    OUTBOX_DEDUP_WINDOW_SECONDS: int = 10
    DELIVERY_INTERVAL_SECONDS: float = 60.0

    # Chaîne de répétition ("ring ring ring" tant que la réservation est pending)
    REPEAT_INTERVAL_SECONDS: int = Field(30, env="REPEAT_INTERVAL_SECONDS")
    REPEAT_DURATION_SECONDS: int = Field(300, env="REPEAT_DURATION_SECONDS")
    REPEAT_BATCH_SIZE: int = 50

    # Côté tablette
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    CLIENT_REDISPLAY_SECONDS: float = 15.0
    CLIENT_RESOLVED_MEMORY: int = 256

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

settings = Settings()
