# server/tests/unit/conftest.py
# ─────────────────────────────────────────────────────────────────────────────
# Conftest pour les TESTS UNITAIRES.
#
# Pose les ENV *avant* les imports booking_alerts.* pour que Settings() voie une
# base SQLite et aucun change feed.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone

import pytest


def pytest_configure(config) -> None:
    """
    S'exécute avant la collecte → parfait pour poser les ENV lues par Settings().
    """
    os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
    os.environ.pop("CHANGE_FEED_URL", None)


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 10, 18, 19, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def restaurant_id() -> uuid.UUID:
    return uuid.uuid4()
