"""Pydantic schemas for the RBAC admin endpoints."""

import uuid
from datetime import datetime

from pydantic import Field

from authcore.models.account import AccountKind
from authcore.schemas.base import CamelModel


class PermissionCreateRequest(CamelModel):
    """Name is conventionally "<resource>:<action>"."""
    name: str = Field(min_length=1, max_length=100)
    resource: str = Field(min_length=1, max_length=100)
    action: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=255)


class PermissionResponse(CamelModel):
    id: uuid.UUID
    name: str
    resource: str
    action: str
    description: str | None


class RoleCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=255)


class RoleResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: str | None
    is_system_role: bool
    permissions: list[str]


class GrantPermissionRequest(CamelModel):
    permission: str


class RoleAssignRequest(CamelModel):
    account_type: AccountKind = AccountKind.USER
    role: str
    expires_at: datetime | None = None


class AccountAccessResponse(CamelModel):
    """Effective roles and permissions of one account."""
    account_id: uuid.UUID
    account_type: AccountKind
    roles: list[str]
    permissions: list[str]
