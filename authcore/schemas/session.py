"""Pydantic schemas for device/session management and the activity log."""

import uuid
from datetime import datetime
from typing import Any

from authcore.schemas.base import CamelModel


class SessionResponse(CamelModel):
    """One active device session. The refresh token itself is never returned."""
    id: uuid.UUID
    user_agent: str | None
    ip_address: str | None
    created_at: datetime
    expires_at: datetime


class ActivityResponse(CamelModel):
    id: uuid.UUID
    action: str
    success: bool
    error_message: str | None
    ip_address: str | None
    user_agent: str | None
    details: dict[str, Any]
    created_at: datetime
