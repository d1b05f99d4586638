"""
Authorization policy table.

Every protected admin endpoint names a policy; the table below maps each
policy name to the permissions it requires. The table is plain data built at
import time, so the complete access matrix can be read (and tested) in one
place instead of being scattered across route decorators.

    policy                   requires
    ──────────────────────   ───────────────────────────────────────────────
    rbac.roles.create        all of {roles:create}
    rbac.roles.grant         all of {roles:update, permissions:read}
    rbac.permissions.create  all of {permissions:create}
    rbac.roles.assign        all of {roles:assign}
    rbac.accounts.inspect    any of {roles:read, roles:assign}

Routes use it as a dependency:

    account: Account = Depends(require_policy("rbac.roles.create"))

Permissions are resolved fresh on each request through rbac_service, so a
revoked or expired role takes effect immediately.
"""

from dataclasses import dataclass, field

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import get_db
from authcore.dependencies import get_current_account
from authcore.exceptions import ForbiddenError
from authcore.logging import get_logger
from authcore.models.account import Account
from authcore.services import rbac_service

logger = get_logger(__name__)


@dataclass(frozen=True)
class Policy:
    """Required permissions: every one of all_of, and at least one of any_of (if set)."""
    all_of: frozenset[str] = field(default_factory=frozenset)
    any_of: frozenset[str] = field(default_factory=frozenset)

    def allows(self, granted: set[str]) -> bool:
        if not self.all_of <= granted:
            return False
        if self.any_of and not (self.any_of & granted):
            return False
        return True


POLICIES: dict[str, Policy] = {
    "rbac.roles.create": Policy(all_of=frozenset({"roles:create"})),
    "rbac.roles.grant": Policy(all_of=frozenset({"roles:update", "permissions:read"})),
    "rbac.permissions.create": Policy(all_of=frozenset({"permissions:create"})),
    "rbac.roles.assign": Policy(all_of=frozenset({"roles:assign"})),
    "rbac.accounts.inspect": Policy(any_of=frozenset({"roles:read", "roles:assign"})),
}


def require_policy(name: str):
    """
    Build a dependency that admits only accounts satisfying POLICIES[name].

    Unknown policy names fail at import time of the router, not per request.
    """
    policy = POLICIES[name]

    async def dependency(
        account: Account = Depends(get_current_account),
        db: AsyncSession = Depends(get_db),
    ) -> Account:
        granted = await rbac_service.permissions_of(db, account.id, account.kind)
        if not policy.allows(granted):
            logger.info("authorization_denied", account_id=str(account.id), policy=name)
            raise ForbiddenError()
        return account

    return dependency
