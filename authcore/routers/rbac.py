"""
RBAC router — role and permission administration.

Endpoints (policy from authcore/authorization.py in brackets):
  GET    /rbac/me                                      — Caller's roles and permissions
  GET    /rbac/roles                                   — List roles        [rbac.accounts.inspect]
  POST   /rbac/roles                                   — Create a role     [rbac.roles.create]
  POST   /rbac/roles/{role_name}/permissions           — Grant permission  [rbac.roles.grant]
  POST   /rbac/permissions                             — Create permission [rbac.permissions.create]
  GET    /rbac/accounts/{account_id}                   — Account's access  [rbac.accounts.inspect]
  POST   /rbac/accounts/{account_id}/roles             — Assign a role     [rbac.roles.assign]
  DELETE /rbac/accounts/{account_id}/roles/{role_name} — Remove a role     [rbac.roles.assign]

Assign and remove are idempotent. Unknown role names yield 404.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.authorization import require_policy
from authcore.database import get_db
from authcore.dependencies import get_current_account
from authcore.models.account import Account, AccountKind
from authcore.models.rbac import Role
from authcore.schemas.rbac import (
    AccountAccessResponse,
    GrantPermissionRequest,
    PermissionCreateRequest,
    PermissionResponse,
    RoleAssignRequest,
    RoleCreateRequest,
    RoleResponse,
)
from authcore.services import credential_service, rbac_service

router = APIRouter()


def _role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system_role=role.is_system_role,
        permissions=sorted(p.name for p in role.permissions),
    )


async def _access_of(db: AsyncSession, account_id: uuid.UUID, kind: AccountKind) -> AccountAccessResponse:
    return AccountAccessResponse(
        account_id=account_id,
        account_type=kind,
        roles=await rbac_service.roles_of(db, account_id, kind),
        permissions=sorted(await rbac_service.permissions_of(db, account_id, kind)),
    )


@router.get("/me", response_model=AccountAccessResponse, summary="Caller's roles and permissions")
async def my_access(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await _access_of(db, account.id, account.kind)


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------

@router.get("/roles", response_model=list[RoleResponse], summary="List roles")
async def list_roles(
    admin: Account = Depends(require_policy("rbac.accounts.inspect")),
    db: AsyncSession = Depends(get_db),
):
    return [_role_response(role) for role in await rbac_service.list_roles(db)]


@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role",
)
async def create_role(
    request: RoleCreateRequest,
    admin: Account = Depends(require_policy("rbac.roles.create")),
    db: AsyncSession = Depends(get_db),
):
    role = await rbac_service.create_role(db, request.name, request.description)
    return _role_response(role)


@router.post(
    "/roles/{role_name}/permissions",
    response_model=RoleResponse,
    summary="Grant a permission to a role",
)
async def grant_permission(
    role_name: str,
    request: GrantPermissionRequest,
    admin: Account = Depends(require_policy("rbac.roles.grant")),
    db: AsyncSession = Depends(get_db),
):
    role = await rbac_service.grant_permission_to_role(db, role_name, request.permission)
    return _role_response(role)


@router.post(
    "/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a permission",
)
async def create_permission(
    request: PermissionCreateRequest,
    admin: Account = Depends(require_policy("rbac.permissions.create")),
    db: AsyncSession = Depends(get_db),
):
    return await rbac_service.create_permission(
        db, request.name, request.resource, request.action, request.description
    )


# ---------------------------------------------------------------------------
# Account assignments
# ---------------------------------------------------------------------------

@router.get(
    "/accounts/{account_id}",
    response_model=AccountAccessResponse,
    summary="Roles and permissions of an account",
)
async def account_access(
    account_id: uuid.UUID,
    account_type: AccountKind = Query(AccountKind.USER, alias="accountType"),
    admin: Account = Depends(require_policy("rbac.accounts.inspect")),
    db: AsyncSession = Depends(get_db),
):
    await credential_service.get_account_or_404(db, account_id, account_type)
    return await _access_of(db, account_id, account_type)


@router.post(
    "/accounts/{account_id}/roles",
    response_model=AccountAccessResponse,
    summary="Assign a role to an account",
)
async def assign_role(
    account_id: uuid.UUID,
    request: RoleAssignRequest,
    admin: Account = Depends(require_policy("rbac.roles.assign")),
    db: AsyncSession = Depends(get_db),
):
    """Re-assigning a held role updates its expiry instead of duplicating it."""
    await credential_service.get_account_or_404(db, account_id, request.account_type)
    await rbac_service.assign_role(
        db,
        account_id,
        request.account_type,
        request.role,
        assigned_by=admin.id,
        expires_at=request.expires_at,
    )
    return await _access_of(db, account_id, request.account_type)


@router.delete(
    "/accounts/{account_id}/roles/{role_name}",
    response_model=AccountAccessResponse,
    summary="Remove a role from an account",
)
async def remove_role(
    account_id: uuid.UUID,
    role_name: str,
    account_type: AccountKind = Query(AccountKind.USER, alias="accountType"),
    admin: Account = Depends(require_policy("rbac.roles.assign")),
    db: AsyncSession = Depends(get_db),
):
    await credential_service.get_account_or_404(db, account_id, account_type)
    await rbac_service.remove_role(db, account_id, account_type, role_name)
    return await _access_of(db, account_id, account_type)
