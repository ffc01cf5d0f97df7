# server/tests/conftest.py
"""
Conftest *global* pour toute la suite de tests.

Points clés (tests @unit uniquement) :
- ENV sûres (pas d'appels externes) + DATABASE_URL SQLite in-memory.
- Celery en mode "eager" (exécution in-process).
- DB SQLite in-memory partagée + Base.create_all, purgée après chaque test.
- Patch FORT de la pile DB : get_sync_session / SessionLocal / engine dans le module
  session (open_session passe par get_sync_session → tout le code applicatif suit).
- Provider push factice (`push_provider`) : enregistre les lots, répond selon un
  comportement par adresse.
"""

import os
import importlib
import pkgutil
from contextlib import contextmanager

import pytest

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


# ============================================================================
# Helpers
# ============================================================================
def _is_unit(request: pytest.FixtureRequest) -> bool:
    """True si le test courant est marqué @pytest.mark.unit."""
    return request.node.get_closest_marker("unit") is not None


# ============================================================================
# UNIT-ONLY: ENV sûres
# ============================================================================
@pytest.fixture(autouse=True)
def unit_env(request, monkeypatch):
    """
    En unit : aucune URL externe exploitable (push provider, change feed).
    Hors unit : ne fait rien.
    """
    if not _is_unit(request):
        return
    from booking_alerts.core.config import settings

    monkeypatch.setattr(settings, "CHANGE_FEED_URL", None)
    monkeypatch.setattr(settings, "PUSH_PROVIDER_URL", "http://example.invalid/push")
    monkeypatch.setattr(settings, "PUSH_ACCESS_TOKEN", None)


# ============================================================================
# UNIT-ONLY: Celery en mode "eager" (tâches exécutées in-process)
# ============================================================================
@pytest.fixture(autouse=True)
def celery_eager(request):
    """
    ⚠️ Comme c'est un fixture générateur, il DOIT toujours 'yield', même hors unit.
    """
    if not _is_unit(request):
        yield
        return

    from booking_alerts.workers.celery_app import celery

    prev_always = celery.conf.task_always_eager
    prev_propag = celery.conf.task_eager_propagates
    celery.conf.task_always_eager = True
    celery.conf.task_eager_propagates = True
    try:
        yield
    finally:
        celery.conf.task_always_eager = prev_always
        celery.conf.task_eager_propagates = prev_propag


# ============================================================================
# UNIT-ONLY: DB SQLite in-memory partagée + Base.metadata.create_all
# ============================================================================
@pytest.fixture(scope="session")
def _sqlite_engine_unit():
    """
    Engine in-memory **partagé** entre connexions (StaticPool + check_same_thread=False)
    + activation des contraintes FK sur chaque connexion.
    """
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    from booking_alerts.infrastructure.persistence.database import base as db_base
    from booking_alerts.infrastructure.persistence.database import models as models_pkg

    for _finder, name, _ispkg in pkgutil.walk_packages(
        models_pkg.__path__, models_pkg.__name__ + "."
    ):
        importlib.import_module(name)

    db_base.Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="session")
def _Session_unit(_sqlite_engine_unit):
    return sessionmaker(
        bind=_sqlite_engine_unit,
        future=True,
        autoflush=True,
        expire_on_commit=False,
    )


@pytest.fixture
def Session(request, _Session_unit):
    """
    Fournit un sessionmaker à utiliser comme `with Session() as s:` pour les tests unitaires.
    Sera *skippé* s'il est injecté dans un test non marqué @unit.
    """
    if not _is_unit(request):
        pytest.skip("Session fixture is only available for unit tests")
    return _Session_unit


@pytest.fixture(autouse=True)
def _clear_db_between_unit_tests(request, _Session_unit):
    """
    Après chaque test unitaire, on supprime le contenu de toutes les tables.
    ⚠️ Générateur : doit 'yield' aussi hors unit.
    """
    if not _is_unit(request):
        yield
        return

    yield
    from booking_alerts.infrastructure.persistence.database import base as db_base
    with _Session_unit() as s:
        for table in reversed(db_base.Base.metadata.sorted_tables):
            s.execute(table.delete())
        s.commit()


# ============================================================================
# UNIT-ONLY: Patch DB fort (get_sync_session + SessionLocal + engine)
# ============================================================================
@pytest.fixture(autouse=True)
def patch_db_stack_for_unit(request, monkeypatch, _Session_unit, _sqlite_engine_unit):
    """
    Rend *impossible* l'usage de Postgres pendant les tests unitaires.
    `open_session()` résout `get_sync_session` à l'appel : patcher le module
    source suffit pour les services et la tâche Celery.
    """
    if not _is_unit(request):
        return

    @contextmanager
    def _fake_get_sync_session():
        with _Session_unit() as s:
            yield s

    sess_mod = importlib.import_module("booking_alerts.infrastructure.persistence.database.session")
    monkeypatch.setattr(sess_mod, "get_sync_session", _fake_get_sync_session)
    monkeypatch.setattr(sess_mod, "_SessionLocal", _Session_unit)
    monkeypatch.setattr(sess_mod, "_engine", _sqlite_engine_unit)


# ============================================================================
# UNIT-ONLY: provider push factice
# ============================================================================
class FakePushProvider:
    """
    behaviour[address] ∈ {"ok", "not_registered", "transient"} (défaut : default).
    `batches` garde chaque appel à send() (liste de PushMessage).
    """

    def __init__(self, default: str = "ok"):
        self.default = default
        self.behaviour: dict[str, str] = {}
        self.batches: list[list] = []

    @property
    def addresses_sent(self) -> list[list[str]]:
        return [[m.to for m in batch] for batch in self.batches]

    def send(self, messages):
        from booking_alerts.infrastructure.notifications.providers.expo_provider import PushTicket

        self.batches.append(list(messages))
        tickets = []
        for i, m in enumerate(messages):
            mode = self.behaviour.get(m.to, self.default)
            if mode == "ok":
                tickets.append(PushTicket(push_address=m.to, ok=True, receipt_id=f"rcpt-{len(self.batches)}-{i}",
                                          raw={"status": "ok"}))
            elif mode == "not_registered":
                tickets.append(PushTicket(
                    push_address=m.to, ok=False, permanent=True, error_code="DeviceNotRegistered",
                    error=f'"{m.to}" is not a registered push notification recipient',
                    raw={"status": "error", "details": {"error": "DeviceNotRegistered"}},
                ))
            else:
                tickets.append(PushTicket(push_address=m.to, ok=False, error="http_503"))
        return tickets


@pytest.fixture
def push_provider(request):
    if not _is_unit(request):
        return None
    return FakePushProvider()
