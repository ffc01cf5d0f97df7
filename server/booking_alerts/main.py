from __future__ import annotations
"""server/booking_alerts/main.py
~~~~~~~~~~~~~~~~~~~~~~~~
Point d'entrée FastAPI.
"""
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_alerts.api.v1.router import api_router
from booking_alerts.core.config import settings
from booking_alerts.core.logging import setup_logging

app = FastAPI(title="Booking Alerts Server", version="0.1.0")

allow_origins: List[str] = []
if origins := settings.CORS_ALLOW_ORIGINS:
    allow_origins = [o.strip() for o in origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup() -> None:
    setup_logging()


app.include_router(api_router, prefix="/api/v1")
