"""
Lockout service — brute-force protection for password logins.

Bookkeeping is per (identifier, account kind), where the identifier is the
normalized login email. The login flow calls:

  1. check()          before the password is verified, so a locked account
                      never reveals whether the submitted password was right
  2. record_failure() after a wrong password or MFA code
  3. record_success() once tokens are actually issued

Atomicity:
  record_failure() does not read the counter and then decide. The row is
  created with INSERT .. ON CONFLICT DO NOTHING, then a single UPDATE
  increments failed_attempts and, in the same statement, sets locked_until
  when the incremented value reaches the threshold. Concurrent failures are
  serialized by the database's row lock on that UPDATE, so a burst of
  parallel attempts cannot slip past the threshold without locking.

Threshold and duration come from MAX_FAILED_LOGIN_ATTEMPTS and
LOCKOUT_DURATION_MINUTES (defaults 5 / 30 minutes).
"""

import math
import uuid
from datetime import timedelta

from sqlalchemy import case, literal, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import UTCDateTime, utcnow
from authcore.exceptions import AccountLockedError
from authcore.logging import get_logger
from authcore.models.account import AccountKind
from authcore.models.account_lockout import AccountLockout

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _normalize(identifier: str) -> str:
    return identifier.strip().lower()


async def get_lockout(
    db: AsyncSession,
    identifier: str,
    account_kind: AccountKind,
) -> AccountLockout | None:
    result = await db.execute(
        select(AccountLockout)
        .where(
            AccountLockout.identifier == _normalize(identifier),
            AccountLockout.account_kind == account_kind,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def check(db: AsyncSession, identifier: str, account_kind: AccountKind) -> None:
    """
    Refuse the attempt if the identifier is currently locked.

    Raises:
        AccountLockedError: With the whole minutes remaining (rounded up).
    """
    lockout = await get_lockout(db, identifier, account_kind)
    if lockout is None or lockout.locked_until is None:
        return

    remaining = lockout.locked_until - utcnow()
    if remaining.total_seconds() > 0:
        minutes_left = math.ceil(remaining.total_seconds() / 60)
        raise AccountLockedError(minutes_left)


async def record_failure(
    db: AsyncSession,
    identifier: str,
    account_kind: AccountKind,
) -> AccountLockout:
    """
    Count one failed attempt, locking the identifier when the threshold is hit.

    Returns:
        The updated lockout row.
    """
    key = _normalize(identifier)
    now = utcnow()
    lock_until = now + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)

    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Lockout upsert not supported for dialect {dialect!r}")

    await db.execute(
        insert(AccountLockout)
        .values(
            id=uuid.uuid4(),
            identifier=key,
            account_kind=account_kind,
            failed_attempts=0,
        )
        .on_conflict_do_nothing(index_elements=["identifier", "account_kind"])
    )

    # SET expressions see the pre-update row, hence "failed_attempts + 1"
    await db.execute(
        update(AccountLockout)
        .where(
            AccountLockout.identifier == key,
            AccountLockout.account_kind == account_kind,
        )
        .values(
            failed_attempts=AccountLockout.failed_attempts + 1,
            last_attempt_at=now,
            locked_until=case(
                (
                    AccountLockout.failed_attempts + 1 >= settings.MAX_FAILED_LOGIN_ATTEMPTS,
                    literal(lock_until, UTCDateTime()),
                ),
                else_=AccountLockout.locked_until,
            ),
        )
        .execution_options(synchronize_session=False)
    )

    lockout = await get_lockout(db, key, account_kind)
    if lockout.failed_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
        logger.warning(
            "account_locked",
            account_kind=account_kind.value,
            failed_attempts=lockout.failed_attempts,
        )
    return lockout


async def record_success(db: AsyncSession, identifier: str, account_kind: AccountKind) -> None:
    """Reset the counter and clear any lock after a successful authentication."""
    await db.execute(
        update(AccountLockout)
        .where(
            AccountLockout.identifier == _normalize(identifier),
            AccountLockout.account_kind == account_kind,
        )
        .values(failed_attempts=0, locked_until=None, last_attempt_at=utcnow())
        .execution_options(synchronize_session=False)
    )
