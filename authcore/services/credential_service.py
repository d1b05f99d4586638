"""
Credential service — identities and passwords.

Handles:
  - Registration of an account of either kind, with email/phone uniqueness
    enforced per kind
  - Password strength validation (all violations reported together)
  - Password hashing and verification, run off the event loop
  - Account lookups used by the rest of the service layer

The database unique constraints on (kind, email) and (kind, phone) back up
the pre-insert check, so two concurrent registrations cannot both succeed;
the loser surfaces as the same ConflictError.
"""

import uuid
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.exceptions import ConflictError, NotFoundError, WeakCredentialError
from authcore.models.account import Account, AccountKind
from authcore.security import (
    hash_password_async,
    password_policy_violations,
    verify_password_async,
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_strong_password(password: str, min_length: int | None = None) -> None:
    """
    Raises:
        WeakCredentialError: Listing every policy rule the password breaks.
    """
    errors = password_policy_violations(password, min_length)
    if errors:
        raise WeakCredentialError(errors)


async def register(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    password: str,
    profile: dict[str, Any],
    phone: str | None = None,
    password_min_length: int | None = None,
) -> Account:
    """
    Create a new account of the given kind.

    Args:
        db: Database session.
        kind: USER or AGENCY.
        email: Login email, unique per kind.
        password: Plaintext password, validated then hashed.
        profile: Kind-specific profile payload.
        phone: Optional phone number, unique per kind when present.
        password_min_length: Relaxed minimum for public registration paths.

    Returns:
        The new Account (flushed, so its id is assigned).

    Raises:
        ConflictError: Email or phone already registered for this kind.
        WeakCredentialError: Password fails the strength policy.
    """
    email = normalize_email(email)

    conditions = [Account.email == email]
    if phone:
        conditions.append(Account.phone == phone)
    result = await db.execute(
        select(Account.id).where(Account.kind == kind, or_(*conditions))
    )
    if result.first() is not None:
        raise ConflictError(f"{kind.value.capitalize()} with this email or phone already exists")

    ensure_strong_password(password, password_min_length)

    account = Account(
        kind=kind,
        email=email,
        phone=phone,
        password_hash=await hash_password_async(password),
        profile=profile,
    )

    db.add(account)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration; nothing else was written yet
        await db.rollback()
        raise ConflictError(f"{kind.value.capitalize()} with this email or phone already exists")

    return account


async def verify_account_password(account: Account | None, plain_password: str) -> bool:
    """
    Check a password for a possibly-missing account.

    Runs a dummy hash when the account or its hash is missing, so the time
    taken does not depend on whether the account exists.
    """
    stored_hash = account.password_hash if account is not None else None
    return await verify_password_async(plain_password, stored_hash)


async def set_password(account: Account, new_password: str) -> None:
    """Validate and store a new password hash on the account (caller commits)."""
    ensure_strong_password(new_password)
    account.password_hash = await hash_password_async(new_password)


async def find_by_email(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
) -> Account | None:
    result = await db.execute(
        select(Account).where(Account.kind == kind, Account.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    kind: AccountKind,
) -> Account | None:
    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.kind == kind)
    )
    return result.scalar_one_or_none()


async def get_account_or_404(
    db: AsyncSession,
    account_id: uuid.UUID,
    kind: AccountKind,
) -> Account:
    """
    Raises:
        NotFoundError: No account with this id and kind.
    """
    account = await get_account(db, account_id, kind)
    if account is None:
        raise NotFoundError(f"{kind.value.capitalize()} not found")
    return account
