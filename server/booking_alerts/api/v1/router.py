from __future__ import annotations
"""server/booking_alerts/api/v1/router.py
~~~~~~~~~~~~~~~~~~~~~~~~
Router principal API v1.
"""
from fastapi import APIRouter
from booking_alerts.api.v1.endpoints import health, devices, bookings, outbox

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(devices.router, tags=["devices"])
api_router.include_router(bookings.router, tags=["bookings"])
api_router.include_router(outbox.router, tags=["outbox"])
