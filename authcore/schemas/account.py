"""Pydantic schema for GET /auth/profile."""

import uuid
from datetime import datetime
from typing import Any

from authcore.models.account import AccountKind, AccountStatus
from authcore.schemas.base import CamelModel


class ProfileResponse(CamelModel):
    """Account summary plus the kind-specific profile payload."""
    id: uuid.UUID
    account_type: AccountKind
    email: str
    phone: str | None
    status: AccountStatus
    email_verified: bool
    phone_verified: bool
    mfa_enabled: bool
    last_login_at: datetime | None
    created_at: datetime
    profile: dict[str, Any]
