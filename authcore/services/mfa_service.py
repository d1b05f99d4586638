"""
MFA service — TOTP enrollment, verification and backup codes.

Per-account state machine:

    Disabled ──generate_secret()──> PendingVerification ──confirm_enable()──> Enabled
        ^                                 │ (bad code / TTL expiry)              │
        └─────────────────────────────────┘                                     │
        └───────────────────────────disable(password)───────────────────────────┘

  - generate_secret() stores the new secret server-side in MfaEnrollment
    (encrypted, MFA_ENROLLMENT_TTL_MINUTES) and returns it with an otpauth://
    URI for the authenticator app. The account stays disabled.
  - confirm_enable() verifies a code against the pending secret. Success
    moves the secret onto the account, enables MFA and issues fresh backup
    codes. Failure discards the pending secret; the caller must start over.
  - disable() requires the account password, not just a logged-in session.

TOTP parameters: RFC 6238 via pyotp, MFA_PERIOD_SECONDS (30) step,
MFA_DIGITS (6) digits, ±MFA_VALID_WINDOW (2) steps of clock-skew tolerance.

Backup codes are consumed with a conditional UPDATE on is_used, so the same
code cannot be spent twice even by concurrent requests.
"""

from dataclasses import dataclass
from datetime import timedelta

import pyotp
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import utcnow
from authcore.exceptions import InvalidMfaCodeError, MfaStateError, UnauthorizedError
from authcore.logging import get_logger
from authcore.models.account import Account
from authcore.models.backup_code import BackupCode
from authcore.models.mfa_enrollment import MfaEnrollment
from authcore.security import decrypt_value, encrypt_value, generate_backup_code
from authcore.services.credential_service import verify_account_password

logger = get_logger(__name__)


@dataclass(frozen=True)
class MfaSetup:
    secret: str
    otpauth_url: str


def _totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(
        secret,
        digits=settings.MFA_DIGITS,
        interval=settings.MFA_PERIOD_SECONDS,
        issuer=settings.MFA_ISSUER,
    )


def verify_totp(secret: str, code: str) -> bool:
    """Check a code against a base32 secret within the configured skew window."""
    code = (code or "").strip()
    if len(code) != settings.MFA_DIGITS or not code.isdigit():
        return False
    return _totp(secret).verify(code, valid_window=settings.MFA_VALID_WINDOW)


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------

async def generate_secret(db: AsyncSession, account: Account) -> MfaSetup:
    """
    Start enrollment: create a pending secret and its provisioning URI.

    Any earlier pending enrollment for the account is replaced.

    Raises:
        MfaStateError: MFA is already enabled.
    """
    if account.mfa_enabled:
        raise MfaStateError("MFA is already enabled")

    secret = pyotp.random_base32(length=32)

    await db.execute(delete(MfaEnrollment).where(MfaEnrollment.account_id == account.id))
    db.add(
        MfaEnrollment(
            account_id=account.id,
            secret=encrypt_value(secret),
            expires_at=utcnow() + timedelta(minutes=settings.MFA_ENROLLMENT_TTL_MINUTES),
        )
    )
    await db.flush()

    otpauth_url = _totp(secret).provisioning_uri(name=account.email)
    return MfaSetup(secret=secret, otpauth_url=otpauth_url)


async def confirm_enable(db: AsyncSession, account: Account, code: str) -> list[str]:
    """
    Finish enrollment by proving possession of the pending secret.

    Returns:
        The freshly generated backup codes (shown to the user once here).

    Raises:
        MfaStateError: Already enabled, or no live pending enrollment.
        InvalidMfaCodeError: The code does not match; the pending secret is
            discarded.
    """
    if account.mfa_enabled:
        raise MfaStateError("MFA is already enabled")

    enrollment = await db.get(MfaEnrollment, account.id, populate_existing=True)
    if enrollment is None or enrollment.expires_at <= utcnow():
        if enrollment is not None:
            await db.delete(enrollment)
            await db.flush()
        raise MfaStateError("No pending MFA enrollment; generate a new secret first")

    if not verify_totp(decrypt_value(enrollment.secret), code):
        await db.delete(enrollment)
        await db.flush()
        logger.info("mfa_enrollment_rejected", account_id=str(account.id))
        raise InvalidMfaCodeError()

    account.mfa_secret = enrollment.secret
    account.mfa_enabled = True
    await db.delete(enrollment)

    codes = await _replace_backup_codes(db, account)
    logger.info("mfa_enabled", account_id=str(account.id), account_kind=account.kind.value)
    return codes


async def disable(db: AsyncSession, account: Account, password: str) -> None:
    """
    Turn MFA off after re-proving the account password.

    Clears the secret, deletes every backup code and any pending enrollment.

    Raises:
        UnauthorizedError: Wrong password.
    """
    if not await verify_account_password(account, password):
        raise UnauthorizedError("Invalid password")

    account.mfa_enabled = False
    account.mfa_secret = None
    await db.execute(delete(BackupCode).where(BackupCode.account_id == account.id))
    await db.execute(delete(MfaEnrollment).where(MfaEnrollment.account_id == account.id))
    await db.flush()
    logger.info("mfa_disabled", account_id=str(account.id), account_kind=account.kind.value)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def verify(account: Account, code: str) -> bool:
    """TOTP check for an MFA-enabled account. False if MFA is not enabled."""
    if not account.mfa_enabled or account.mfa_secret is None:
        return False
    return verify_totp(decrypt_value(account.mfa_secret), code)


async def verify_backup_code(db: AsyncSession, account: Account, code: str) -> bool:
    """
    Consume one matching unused backup code.

    Returns:
        True if a code was consumed by this call, False otherwise.
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        return False

    result = await db.execute(
        select(BackupCode.id)
        .where(
            BackupCode.account_id == account.id,
            BackupCode.code == normalized,
            BackupCode.is_used.is_(False),
        )
        .limit(1)
    )
    code_id = result.scalar_one_or_none()
    if code_id is None:
        return False

    consumed = await db.execute(
        update(BackupCode)
        .where(BackupCode.id == code_id, BackupCode.is_used.is_(False))
        .values(is_used=True, used_at=utcnow())
    )
    return consumed.rowcount == 1


# ---------------------------------------------------------------------------
# Backup codes
# ---------------------------------------------------------------------------

async def _replace_backup_codes(db: AsyncSession, account: Account) -> list[str]:
    await db.execute(delete(BackupCode).where(BackupCode.account_id == account.id))

    codes = [generate_backup_code(settings.BACKUP_CODE_LENGTH) for _ in range(settings.BACKUP_CODE_COUNT)]
    db.add_all(BackupCode(account_id=account.id, code=code) for code in codes)
    await db.flush()
    return codes


async def regenerate_backup_codes(db: AsyncSession, account: Account) -> list[str]:
    """
    Replace all backup codes; previous ones stop working immediately.

    Raises:
        MfaStateError: MFA is not enabled.
    """
    if not account.mfa_enabled:
        raise MfaStateError("MFA is not enabled")
    return await _replace_backup_codes(db, account)


async def list_backup_codes(db: AsyncSession, account: Account) -> list[str]:
    """Unused backup codes of the account."""
    result = await db.execute(
        select(BackupCode.code)
        .where(BackupCode.account_id == account.id, BackupCode.is_used.is_(False))
        .order_by(BackupCode.created_at)
    )
    return list(result.scalars().all())
