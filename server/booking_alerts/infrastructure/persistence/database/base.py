from __future__ import annotations
"""
server/booking_alerts/infrastructure/persistence/database/base.py

Base déclarative commune aux tables de l'outbox d'alertes
(bookings, devices, préférences, intents, schedules, logs).

L'import de `models` en fin de module enregistre toutes les tables dans
Base.metadata : `create_all` (SQLite des tests unitaires, fixture d'intégration)
voit donc le schéma complet sans import explicite.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Noms de contraintes stables entre create_all et la révision Alembic
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


from booking_alerts.infrastructure.persistence.database import models  # noqa: E402,F401

__all__ = ["Base", "NAMING_CONVENTION"]
