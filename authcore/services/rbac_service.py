"""
RBAC service — resolving roles and permissions for an account.

Permissions reach an account only through roles:

    Account --RoleAssignment--> Role --role_permissions--> Permission

An assignment counts while its expires_at is NULL or in the future. Expired
assignments are left in place and simply filtered out at resolution time.

Resolution is read-only and independent of the login path; the authorization
layer (authcore/authorization.py) calls permissions_of() per request.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import utcnow
from authcore.exceptions import ConflictError, PermissionNotFoundError, RoleNotFoundError
from authcore.logging import get_logger
from authcore.models.account import AccountKind
from authcore.models.rbac import Permission, Role, RoleAssignment, role_permissions

logger = get_logger(__name__)


def _currently_valid():
    return or_(RoleAssignment.expires_at.is_(None), RoleAssignment.expires_at > utcnow())


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

async def roles_of(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
) -> list[str]:
    """Names of the account's currently valid roles, sorted."""
    result = await db.execute(
        select(Role.name)
        .join(RoleAssignment, RoleAssignment.role_id == Role.id)
        .where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.account_kind == account_kind,
            _currently_valid(),
        )
        .order_by(Role.name)
    )
    return list(result.scalars().all())


async def permissions_of(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
) -> set[str]:
    """
    Union of the permissions of every currently valid role.

    DISTINCT in SQL plus the set return type means a permission granted by
    several roles appears once.
    """
    result = await db.execute(
        select(Permission.name)
        .distinct()
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(RoleAssignment, RoleAssignment.role_id == role_permissions.c.role_id)
        .where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.account_kind == account_kind,
            _currently_valid(),
        )
    )
    return set(result.scalars().all())


async def has_permission(
    db: AsyncSession, account_id: uuid.UUID, account_kind: AccountKind, permission: str
) -> bool:
    return permission in await permissions_of(db, account_id, account_kind)


async def has_any(
    db: AsyncSession, account_id: uuid.UUID, account_kind: AccountKind, permissions: list[str]
) -> bool:
    granted = await permissions_of(db, account_id, account_kind)
    return any(p in granted for p in permissions)


async def has_all(
    db: AsyncSession, account_id: uuid.UUID, account_kind: AccountKind, permissions: list[str]
) -> bool:
    granted = await permissions_of(db, account_id, account_kind)
    return set(permissions) <= granted


async def has_role(
    db: AsyncSession, account_id: uuid.UUID, account_kind: AccountKind, role_name: str
) -> bool:
    return role_name in await roles_of(db, account_id, account_kind)


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

async def get_role_by_name(db: AsyncSession, role_name: str) -> Role:
    """
    Raises:
        RoleNotFoundError: No role with this name.
    """
    result = await db.execute(select(Role).where(Role.name == role_name))
    role = result.scalar_one_or_none()
    if role is None:
        raise RoleNotFoundError(role_name)
    return role


async def assign_role(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    role_name: str,
    assigned_by: uuid.UUID | None = None,
    expires_at: datetime | None = None,
) -> RoleAssignment:
    """
    Assign a role to an account, or refresh an existing assignment.

    Idempotent: assigning the same role twice updates assigned_by and
    expires_at on the existing row instead of creating a second one.

    Raises:
        RoleNotFoundError: Unknown role name.
    """
    role = await get_role_by_name(db, role_name)

    result = await db.execute(
        select(RoleAssignment).where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.account_kind == account_kind,
            RoleAssignment.role_id == role.id,
        )
    )
    assignment = result.scalar_one_or_none()

    if assignment is None:
        assignment = RoleAssignment(
            account_id=account_id,
            account_kind=account_kind,
            role_id=role.id,
            assigned_by=assigned_by,
            expires_at=expires_at,
        )
        db.add(assignment)
    else:
        assignment.assigned_by = assigned_by
        assignment.expires_at = expires_at

    await db.flush()
    logger.info(
        "role_assigned",
        account_id=str(account_id),
        account_kind=account_kind.value,
        role=role_name,
    )
    return assignment


async def remove_role(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    role_name: str,
) -> bool:
    """
    Remove a role from an account. Removing a role the account does not
    hold is a no-op.

    Returns:
        True if an assignment was deleted.

    Raises:
        RoleNotFoundError: Unknown role name.
    """
    role = await get_role_by_name(db, role_name)
    result = await db.execute(
        delete(RoleAssignment).where(
            RoleAssignment.account_id == account_id,
            RoleAssignment.account_kind == account_kind,
            RoleAssignment.role_id == role.id,
        )
    )
    if result.rowcount:
        logger.info(
            "role_removed",
            account_id=str(account_id),
            account_kind=account_kind.value,
            role=role_name,
        )
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# Catalogue management
# ---------------------------------------------------------------------------

async def create_role(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    is_system_role: bool = False,
) -> Role:
    """
    Raises:
        ConflictError: A role with this name exists.
    """
    existing = await db.execute(select(Role.id).where(Role.name == name))
    if existing.first() is not None:
        raise ConflictError(f"Role '{name}' already exists")

    role = Role(name=name, description=description, is_system_role=is_system_role, permissions=[])
    db.add(role)
    await db.flush()
    return role


async def create_permission(
    db: AsyncSession,
    name: str,
    resource: str,
    action: str,
    description: str | None = None,
) -> Permission:
    """
    Raises:
        ConflictError: A permission with this name exists.
    """
    existing = await db.execute(select(Permission.id).where(Permission.name == name))
    if existing.first() is not None:
        raise ConflictError(f"Permission '{name}' already exists")

    permission = Permission(name=name, resource=resource, action=action, description=description)
    db.add(permission)
    await db.flush()
    return permission


async def grant_permission_to_role(
    db: AsyncSession,
    role_name: str,
    permission_name: str,
) -> Role:
    """
    Attach a permission to a role (no-op if already attached).

    Raises:
        RoleNotFoundError: Unknown role name.
        PermissionNotFoundError: Unknown permission name.
    """
    role = await get_role_by_name(db, role_name)

    result = await db.execute(select(Permission).where(Permission.name == permission_name))
    permission = result.scalar_one_or_none()
    if permission is None:
        raise PermissionNotFoundError(permission_name)

    if permission not in role.permissions:
        role.permissions.append(permission)
        await db.flush()
    return role


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------

# (name, resource, action, description)
DEFAULT_PERMISSIONS = [
    ("roles:read", "roles", "read", "View roles and account assignments"),
    ("roles:create", "roles", "create", "Create roles"),
    ("roles:update", "roles", "update", "Attach permissions to roles"),
    ("roles:assign", "roles", "assign", "Assign and remove account roles"),
    ("permissions:read", "permissions", "read", "View permissions"),
    ("permissions:create", "permissions", "create", "Create permissions"),
]

# role name -> (description, permission names)
DEFAULT_ROLES = {
    "admin": ("Full access to the RBAC administration surface", [p[0] for p in DEFAULT_PERMISSIONS]),
    "auditor": ("Read-only view of roles and assignments", ["roles:read", "permissions:read"]),
}


async def ensure_default_catalogue(db: AsyncSession) -> None:
    """Create the built-in permissions and system roles that are missing. Idempotent."""
    existing = set((await db.execute(select(Permission.name))).scalars().all())
    for name, resource, action, description in DEFAULT_PERMISSIONS:
        if name not in existing:
            db.add(Permission(name=name, resource=resource, action=action, description=description))
    await db.flush()

    existing_roles = set((await db.execute(select(Role.name))).scalars().all())
    for role_name, (description, permission_names) in DEFAULT_ROLES.items():
        if role_name not in existing_roles:
            await create_role(db, role_name, description, is_system_role=True)
        for permission_name in permission_names:
            await grant_permission_to_role(db, role_name, permission_name)
