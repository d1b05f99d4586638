"""
Activity service — append-only audit trail of security events.

Rows are added to the request's session, so an event commits together with
the state change it describes. Because get_db() also commits on domain
errors, failure events (a rejected login, a bad MFA code) are kept even
though the request itself fails.
"""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.models.account import Account, AccountKind
from authcore.models.activity_log import ActivityLog
from authcore.services.session_service import DeviceInfo


async def log_activity(
    db: AsyncSession,
    action: str,
    *,
    account: Account | None = None,
    account_id: uuid.UUID | None = None,
    account_kind: AccountKind | None = None,
    device: DeviceInfo | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> ActivityLog:
    """
    Record one security event.

    Pass either the Account or its id/kind. Never put passwords, codes or
    tokens into details.
    """
    if account is not None:
        account_id, account_kind = account.id, account.kind

    entry = ActivityLog(
        account_id=account_id,
        account_kind=account_kind,
        action=action,
        ip_address=device.ip_address if device else None,
        user_agent=device.user_agent if device else None,
        details=details or {},
        success=success,
        error_message=error_message,
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_recent(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    limit: int = 50,
) -> list[ActivityLog]:
    """Most recent events for one account, newest first."""
    result = await db.execute(
        select(ActivityLog)
        .where(
            ActivityLog.account_id == account_id,
            ActivityLog.account_kind == account_kind,
        )
        .order_by(ActivityLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
