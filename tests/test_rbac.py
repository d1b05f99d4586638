"""
Tests for role-based access control.

These tests verify:
  - Effective permissions are the duplicate-free union over currently valid
    role assignments; expired assignments contribute nothing
  - Assigning is idempotent and removing an unheld role is a no-op
  - The admin endpoints are guarded by the policy table: 403 without the
    required permissions, full lifecycle with them
  - Revoking a role takes effect on the very next request
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from authcore.authorization import POLICIES, Policy
from authcore.database import utcnow
from authcore.exceptions import ConflictError, PermissionNotFoundError, RoleNotFoundError
from authcore.models.account import AccountKind
from authcore.models.rbac import Permission
from authcore.services import rbac_service


async def make_role(db, name: str, permissions: list[str]) -> None:
    await rbac_service.create_role(db, name)
    for permission in permissions:
        exists = await db.scalar(select(Permission.id).where(Permission.name == permission))
        if exists is None:
            resource, action = permission.split(":")
            await rbac_service.create_permission(db, permission, resource, action)
        await rbac_service.grant_permission_to_role(db, name, permission)


# ---------------------------------------------------------------------------
# Resolution (service level)
# ---------------------------------------------------------------------------

class TestResolution:

    async def test_union_without_duplicates(self, db_session):
        """Permissions of several roles are merged without repeats."""
        await make_role(db_session, "editor", ["posts:read", "posts:write"])
        await make_role(db_session, "reader", ["posts:read", "comments:read"])
        account_id = uuid.uuid4()

        await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "editor")
        await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "reader")

        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.USER) == {
            "posts:read",
            "posts:write",
            "comments:read",
        }
        assert await rbac_service.roles_of(db_session, account_id, AccountKind.USER) == ["editor", "reader"]

    async def test_no_roles_no_permissions(self, db_session):
        """An account with no assignments has no roles and no permissions."""
        account_id = uuid.uuid4()
        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.USER) == set()
        assert await rbac_service.roles_of(db_session, account_id, AccountKind.USER) == []

    async def test_expired_assignment_contributes_nothing(self, db_session):
        """An expired assignment grants nothing until renewed with a future expiry."""
        await make_role(db_session, "temp", ["reports:read"])
        account_id = uuid.uuid4()

        await rbac_service.assign_role(
            db_session, account_id, AccountKind.USER, "temp", expires_at=utcnow() - timedelta(minutes=1)
        )
        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.USER) == set()
        assert await rbac_service.has_role(db_session, account_id, AccountKind.USER, "temp") is False

        # Re-assigning with a future expiry revives it
        await rbac_service.assign_role(
            db_session, account_id, AccountKind.USER, "temp", expires_at=utcnow() + timedelta(days=1)
        )
        assert await rbac_service.has_permission(db_session, account_id, AccountKind.USER, "reports:read")

    async def test_assignment_is_scoped_to_kind(self, db_session):
        """A role assigned to an agency id grants nothing to a user with that id."""
        await make_role(db_session, "staff", ["bookings:manage"])
        account_id = uuid.uuid4()
        await rbac_service.assign_role(db_session, account_id, AccountKind.AGENCY, "staff")

        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.USER) == set()
        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.AGENCY) == {"bookings:manage"}

    async def test_has_any_and_has_all(self, db_session):
        """has_any needs one listed permission and has_all needs every one."""
        await make_role(db_session, "editor", ["posts:read", "posts:write"])
        account_id = uuid.uuid4()
        await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "editor")

        assert await rbac_service.has_any(db_session, account_id, AccountKind.USER, ["posts:delete", "posts:read"])
        assert not await rbac_service.has_any(db_session, account_id, AccountKind.USER, ["posts:delete"])
        assert await rbac_service.has_all(db_session, account_id, AccountKind.USER, ["posts:read", "posts:write"])
        assert not await rbac_service.has_all(db_session, account_id, AccountKind.USER, ["posts:read", "posts:delete"])


class TestAssignment:

    async def test_unknown_role(self, db_session):
        """Assigning or removing an unknown role raises RoleNotFoundError."""
        with pytest.raises(RoleNotFoundError):
            await rbac_service.assign_role(db_session, uuid.uuid4(), AccountKind.USER, "ghost")
        with pytest.raises(RoleNotFoundError):
            await rbac_service.remove_role(db_session, uuid.uuid4(), AccountKind.USER, "ghost")

    async def test_assign_is_idempotent(self, db_session):
        """Assigning a held role returns the existing assignment."""
        await make_role(db_session, "editor", ["posts:read"])
        account_id = uuid.uuid4()

        first = await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "editor")
        second = await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "editor")

        assert first.id == second.id
        assert await rbac_service.roles_of(db_session, account_id, AccountKind.USER) == ["editor"]

    async def test_assignments_are_kept_per_kind(self, db_session):
        """The same id under two kinds holds two independent assignments."""
        await make_role(db_session, "staff", ["bookings:manage"])
        account_id = uuid.uuid4()
        expiry = utcnow() + timedelta(days=1)

        as_user = await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "staff")
        as_agency = await rbac_service.assign_role(
            db_session, account_id, AccountKind.AGENCY, "staff", expires_at=expiry
        )

        assert as_user.id != as_agency.id
        assert as_user.expires_at is None
        assert as_agency.expires_at == expiry

        await rbac_service.remove_role(db_session, account_id, AccountKind.USER, "staff")
        assert await rbac_service.roles_of(db_session, account_id, AccountKind.USER) == []
        assert await rbac_service.roles_of(db_session, account_id, AccountKind.AGENCY) == ["staff"]

    async def test_remove_role(self, db_session):
        """Removing a role drops its permissions; removing it again is a no-op."""
        await make_role(db_session, "editor", ["posts:read"])
        account_id = uuid.uuid4()
        await rbac_service.assign_role(db_session, account_id, AccountKind.USER, "editor")

        assert await rbac_service.remove_role(db_session, account_id, AccountKind.USER, "editor") is True
        assert await rbac_service.permissions_of(db_session, account_id, AccountKind.USER) == set()
        # Second removal is a no-op
        assert await rbac_service.remove_role(db_session, account_id, AccountKind.USER, "editor") is False

    async def test_catalogue_conflicts(self, db_session):
        """Duplicate role or permission names raise ConflictError."""
        await rbac_service.create_role(db_session, "editor")
        with pytest.raises(ConflictError):
            await rbac_service.create_role(db_session, "editor")

        await rbac_service.create_permission(db_session, "posts:read", "posts", "read")
        with pytest.raises(ConflictError):
            await rbac_service.create_permission(db_session, "posts:read", "posts", "read")

    async def test_grant_unknown_permission(self, db_session):
        """Granting a permission that does not exist raises PermissionNotFoundError."""
        await rbac_service.create_role(db_session, "editor")
        with pytest.raises(PermissionNotFoundError):
            await rbac_service.grant_permission_to_role(db_session, "editor", "posts:nuke")

    async def test_default_catalogue_is_idempotent(self, db_session):
        """Seeding twice leaves exactly the admin and auditor roles."""
        await rbac_service.ensure_default_catalogue(db_session)
        await rbac_service.ensure_default_catalogue(db_session)

        roles = {role.name: role for role in await rbac_service.list_roles(db_session)}
        assert set(roles) == {"admin", "auditor"}
        assert roles["admin"].is_system_role
        assert {p.name for p in roles["admin"].permissions} == {
            name for name, *_ in rbac_service.DEFAULT_PERMISSIONS
        }
        assert {p.name for p in roles["auditor"].permissions} == {"roles:read", "permissions:read"}


# ---------------------------------------------------------------------------
# Policy table
# ---------------------------------------------------------------------------

class TestPolicies:

    def test_all_of(self):
        """all_of requires every listed permission."""
        policy = Policy(all_of=frozenset({"a", "b"}))
        assert policy.allows({"a", "b", "c"})
        assert not policy.allows({"a"})

    def test_any_of(self):
        """any_of requires at least one listed permission."""
        policy = Policy(any_of=frozenset({"a", "b"}))
        assert policy.allows({"b"})
        assert not policy.allows({"c"})
        assert not policy.allows(set())

    def test_combined(self):
        """all_of and any_of must both hold when combined."""
        policy = Policy(all_of=frozenset({"a"}), any_of=frozenset({"b", "c"}))
        assert policy.allows({"a", "c"})
        assert not policy.allows({"a"})
        assert not policy.allows({"c"})

    def test_admin_satisfies_every_policy(self):
        """The admin role passes every route policy."""
        admin_permissions = set(rbac_service.DEFAULT_ROLES["admin"][1])
        for name, policy in POLICIES.items():
            assert policy.allows(admin_permissions), name

    def test_auditor_can_only_inspect(self):
        """The auditor role passes only the inspection policy."""
        auditor_permissions = set(rbac_service.DEFAULT_ROLES["auditor"][1])
        allowed = {name for name, policy in POLICIES.items() if policy.allows(auditor_permissions)}
        assert allowed == {"rbac.accounts.inspect"}


# ---------------------------------------------------------------------------
# Admin API
# ---------------------------------------------------------------------------

class TestRbacApi:

    async def test_me_without_roles(self, auth_user):
        """A fresh account sees no roles and no permissions."""
        response = await auth_user.client.get("/rbac/me")
        assert response.status_code == 200
        data = response.json()
        assert data["accountId"] == str(auth_user.account_id)
        assert data["roles"] == []
        assert data["permissions"] == []

    async def test_me_requires_authentication(self, client):
        """/rbac/me challenges anonymous requests."""
        response = await client.get("/rbac/me")
        assert response.status_code == 401

    async def test_non_admin_is_forbidden(self, auth_user):
        """Catalogue endpoints are 403 for an account without permissions."""
        response = await auth_user.client.post("/rbac/roles", json={"name": "sneaky"})
        assert response.status_code == 403
        assert response.json()["error_type"] == "forbidden"

        response = await auth_user.client.get("/rbac/roles")
        assert response.status_code == 403

    async def test_admin_lifecycle(self, admin_user, auth_user):
        """An admin creates, grants, assigns and removes a role end to end."""
        admin = admin_user.client

        created = await admin.post("/rbac/roles", json={"name": "support", "description": "Helpdesk"})
        assert created.status_code == 201
        assert created.json()["permissions"] == []

        permission = await admin.post(
            "/rbac/permissions",
            json={"name": "tickets:read", "resource": "tickets", "action": "read"},
        )
        assert permission.status_code == 201

        granted = await admin.post("/rbac/roles/support/permissions", json={"permission": "tickets:read"})
        assert granted.status_code == 200
        assert granted.json()["permissions"] == ["tickets:read"]

        assigned = await admin.post(
            f"/rbac/accounts/{auth_user.account_id}/roles",
            json={"role": "support"},
        )
        assert assigned.status_code == 200
        assert assigned.json()["roles"] == ["support"]
        assert assigned.json()["permissions"] == ["tickets:read"]

        me = await auth_user.client.get("/rbac/me")
        assert me.json()["roles"] == ["support"]

        removed = await admin.delete(f"/rbac/accounts/{auth_user.account_id}/roles/support")
        assert removed.status_code == 200
        assert removed.json()["roles"] == []

        # Takes effect immediately for the affected account
        me = await auth_user.client.get("/rbac/me")
        assert me.json()["permissions"] == []

    async def test_duplicate_role_conflicts(self, admin_user):
        """Creating an existing role over the API is a 409."""
        response = await admin_user.client.post("/rbac/roles", json={"name": "admin"})
        assert response.status_code == 409

    async def test_assign_unknown_role(self, admin_user, auth_user):
        """Assigning an unknown role over the API is a 404."""
        response = await admin_user.client.post(
            f"/rbac/accounts/{auth_user.account_id}/roles",
            json={"role": "ghost"},
        )
        assert response.status_code == 404

    async def test_unknown_account(self, admin_user):
        """Inspecting or assigning to a missing account is a 404."""
        missing = uuid.uuid4()
        assert (await admin_user.client.get(f"/rbac/accounts/{missing}")).status_code == 404
        response = await admin_user.client.post(f"/rbac/accounts/{missing}/roles", json={"role": "auditor"})
        assert response.status_code == 404

    async def test_account_of_other_kind_is_not_found(self, admin_user, auth_user):
        """Looking up a user id as an agency is a 404."""
        response = await admin_user.client.get(
            f"/rbac/accounts/{auth_user.account_id}", params={"accountType": "agency"}
        )
        assert response.status_code == 404

    async def test_expired_assignment_via_api(self, admin_user, auth_user):
        """An assignment created already expired grants no role."""
        response = await admin_user.client.post(
            f"/rbac/accounts/{auth_user.account_id}/roles",
            json={"role": "auditor", "expiresAt": (utcnow() - timedelta(minutes=1)).isoformat()},
        )
        assert response.status_code == 200
        assert response.json()["roles"] == []

    async def test_revoked_admin_loses_access(self, admin_user):
        """An admin who removes their own role is refused on the next request."""
        response = await admin_user.client.delete(f"/rbac/accounts/{admin_user.account_id}/roles/admin")
        assert response.status_code == 200

        response = await admin_user.client.get("/rbac/roles")
        assert response.status_code == 403

    async def test_auditor_can_inspect_but_not_assign(self, admin_user, auth_user):
        """An auditor can list and inspect but cannot assign roles."""
        await admin_user.client.post(
            f"/rbac/accounts/{auth_user.account_id}/roles", json={"role": "auditor"}
        )

        listed = await auth_user.client.get("/rbac/roles")
        assert listed.status_code == 200
        assert {role["name"] for role in listed.json()} == {"admin", "auditor"}

        inspected = await auth_user.client.get(f"/rbac/accounts/{admin_user.account_id}")
        assert inspected.status_code == 200
        assert inspected.json()["roles"] == ["admin"]

        response = await auth_user.client.post(
            f"/rbac/accounts/{auth_user.account_id}/roles", json={"role": "admin"}
        )
        assert response.status_code == 403
