# server/booking_alerts/infrastructure/persistence/database/session.py
from __future__ import annotations

"""
Engine / sessions SQLAlchemy.

- API (FastAPI)      : `Depends(get_db)`, le endpoint ou le service committe.
- Services / Celery  : `with open_session() as s:`, commit en sortie normale,
                       rollback sur exception. Le Delivery Worker ouvre une
                       unité de travail par étape (claim, logs, décision).
- Tests unitaires    : `get_sync_session` est remplacé par une fabrique SQLite ;
                       `open_session` la résout à l'appel.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from booking_alerts.core.config import settings

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _engine_options(database_url: str) -> dict[str, Any]:
    """Options create_engine selon le dialecte (Postgres en prod, SQLite en dev/tests)."""
    url = make_url(database_url)
    backend = url.get_backend_name()
    opts: dict[str, Any] = {"future": True, "pool_pre_ping": True, "connect_args": {}}

    if backend in ("postgresql", "postgres"):
        opts["connect_args"]["connect_timeout"] = settings.DB_CONNECT_TIMEOUT
    elif backend == "sqlite":
        opts["connect_args"]["check_same_thread"] = False
        # base mémoire : une seule connexion partagée, sinon chaque session voit une base vide
        if (url.database or "").strip() in ("", ":memory:"):
            opts["poolclass"] = StaticPool
    return opts


def init_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
    return _engine


def init_sessionmaker() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=init_engine(), future=True, autoflush=True, expire_on_commit=False)
    return _SessionLocal


def get_session() -> Session:
    """Nouvelle Session ; fermeture à la charge de l'appelant."""
    return init_sessionmaker()()


@contextmanager
def get_sync_session() -> Iterator[Session]:
    """`with get_sync_session() as s:` ; aucun commit implicite."""
    s = get_session()
    try:
        yield s
    finally:
        s.close()


@contextmanager
def open_session() -> Iterator[Session]:
    with get_sync_session() as s:
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise


def get_db() -> Iterator[Session]:
    """Dépendance FastAPI (fermeture automatique)."""
    db = get_session()
    try:
        yield db
    finally:
        db.close()
