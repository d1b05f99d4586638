"""
Session service — the registry of issued refresh tokens.

Every refresh token the token service hands out is persisted here, and a
refresh token is honoured only while its Session is both active and
unexpired. Both conditions are checked on every lookup: an expired session
whose is_active flag was never flipped is still invalid.

Revocation is logical (is_active=False) and always scoped to the owning
account, so one account can never revoke another's sessions by guessing ids.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import utcnow
from authcore.models.account import AccountKind
from authcore.models.session import Session
from authcore.security import generate_session_token


@dataclass(frozen=True)
class DeviceInfo:
    """Client metadata captured at login and shown in the sessions list."""
    user_agent: str | None = None
    ip_address: str | None = None


async def create_session(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    refresh_token: str,
    device: DeviceInfo | None = None,
    ttl: timedelta | None = None,
) -> Session:
    """
    Persist a new active session for a freshly issued refresh token.

    Args:
        ttl: Lifetime of the session. Defaults to REFRESH_TOKEN_EXPIRE_DAYS.
    """
    device = device or DeviceInfo()
    ttl = ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    session = Session(
        account_id=account_id,
        account_kind=account_kind,
        session_token=generate_session_token(),
        refresh_token=refresh_token,
        user_agent=device.user_agent,
        ip_address=device.ip_address,
        is_active=True,
        expires_at=utcnow() + ttl,
    )
    db.add(session)
    await db.flush()
    return session


async def list_active(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
) -> list[Session]:
    """All active, unexpired sessions of an account, newest first."""
    result = await db.execute(
        select(Session)
        .where(
            Session.account_id == account_id,
            Session.account_kind == account_kind,
            Session.is_active.is_(True),
            Session.expires_at > utcnow(),
        )
        .order_by(Session.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    session_id: uuid.UUID,
) -> bool:
    """
    Deactivate exactly one session owned by the given account.

    Returns:
        True if an active session was revoked, False if no active session
        with that id belongs to the account.
    """
    result = await db.execute(
        update(Session)
        .where(
            Session.id == session_id,
            Session.account_id == account_id,
            Session.account_kind == account_kind,
            Session.is_active.is_(True),
        )
        .values(is_active=False, updated_at=utcnow())
    )
    return result.rowcount == 1


async def revoke_all(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
) -> int:
    """Deactivate every active session of an account. Returns the number revoked."""
    result = await db.execute(
        update(Session)
        .where(
            Session.account_id == account_id,
            Session.account_kind == account_kind,
            Session.is_active.is_(True),
        )
        .values(is_active=False, updated_at=utcnow())
    )
    return result.rowcount


async def revoke_by_refresh_token(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    refresh_token: str,
) -> bool:
    """Deactivate the owner's session holding this refresh token (used by logout)."""
    result = await db.execute(
        update(Session)
        .where(
            Session.refresh_token == refresh_token,
            Session.account_id == account_id,
            Session.account_kind == account_kind,
            Session.is_active.is_(True),
        )
        .values(is_active=False, updated_at=utcnow())
    )
    return result.rowcount == 1


async def find_by_refresh_token(db: AsyncSession, refresh_token: str) -> Session | None:
    """Return the active, unexpired session for this exact token string, or None."""
    result = await db.execute(
        select(Session).where(
            Session.refresh_token == refresh_token,
            Session.is_active.is_(True),
            Session.expires_at > utcnow(),
        )
    )
    return result.scalar_one_or_none()
