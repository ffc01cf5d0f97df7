from __future__ import annotations
"""
server/booking_alerts/api/schemas/device.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Pydantic schemas pour l'enregistrement des tablettes (adresses push).
"""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class DeviceRegisterIn(BaseModel):
    restaurant_id: uuid.UUID
    device_id: str = Field(..., min_length=1, max_length=255)
    push_address: str = Field(..., min_length=1, max_length=255)
    device_name: Optional[str] = Field(default=None, max_length=255)
    platform: Optional[Platform] = None
    app_version: Optional[str] = Field(default=None, max_length=32)

    @field_validator("push_address")
    @classmethod
    def strip_address(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("push_address must not be blank")
        return v


class DeviceAddressIn(BaseModel):
    """Payload commun à DELETE /devices et POST /devices/heartbeat."""
    restaurant_id: uuid.UUID
    push_address: str = Field(..., min_length=1, max_length=255)
