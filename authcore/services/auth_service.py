"""
Authentication service — the orchestrator.

This is the only service that calls several of the others. Routers call
these functions and translate the results into HTTP responses, so every flow
here can be tested without spinning up a web server.

Login state machine:

    Start
      │ lockout_service.check()              AccountLockedError
      ▼
    LockoutChecked
      │ credential check (dummy hash if the  UnauthorizedError + record_failure()
      │ account does not exist)
      ▼
    CredentialsVerified
      │ status / email verification          AccountBlocked / Dormant / Inactive,
      ▼                                      EmailNotVerifiedError
    StatusChecked
      ├── MFA enabled, no code ──> MfaRequired (no tokens, no session)
      ├── MFA enabled, bad code ─> InvalidMfaCodeError + record_failure()
      ▼
    TokensIssued: session created, last_login_at set, lockout reset

Registration has two variants selected by REQUIRE_EMAIL_VERIFICATION. A
deployment runs exactly one of them:
  - True:  register returns the account only; login waits for verify_email()
  - False: register returns a token pair straight away

Anti-enumeration:
  - Wrong password and unknown email produce the same UnauthorizedError, and
    both run a password hash so timing matches.
  - forgot_password() and resend_verification() behave identically whether
    or not the account exists.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import utcnow
from authcore.exceptions import (
    AccountBlockedError,
    AccountDormantError,
    AccountInactiveError,
    ConflictError,
    EmailNotVerifiedError,
    InvalidMfaCodeError,
    InvalidOrExpiredOtpError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
)
from authcore.logging import get_logger, mask_identifier
from authcore.models.account import Account, AccountKind, AccountStatus
from authcore.models.otp_code import OtpPurpose
from authcore.security import hash_password_async
from authcore.services import (
    activity_service,
    credential_service,
    lockout_service,
    mfa_service,
    otp_service,
    session_service,
    token_service,
)
from authcore.services.notification_service import Notifier
from authcore.services.session_service import DeviceInfo
from authcore.services.token_service import TokenPair

logger = get_logger(__name__)

MFA_METHOD_TOTP = "totp"


@dataclass
class AuthResult:
    """
    Outcome of a login attempt.

    Either tokens is set (TokensIssued) or mfa_required is True and tokens is
    None (MfaRequired).
    """
    account: Account
    tokens: TokenPair | None = None
    mfa_required: bool = False
    mfa_method: str | None = None


def ensure_can_login(account: Account) -> None:
    """
    Raises:
        AccountBlockedError / AccountDormantError / AccountInactiveError:
            For every status other than ACTIVE.
    """
    if account.status == AccountStatus.ACTIVE:
        return
    if account.status == AccountStatus.BLOCKED:
        raise AccountBlockedError()
    if account.status == AccountStatus.DORMANT:
        raise AccountDormantError()
    raise AccountInactiveError(account.status.value)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def register(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    password: str,
    profile: dict[str, Any],
    notifier: Notifier,
    phone: str | None = None,
    device: DeviceInfo | None = None,
) -> tuple[Account, TokenPair | None]:
    """
    Register a user or agency and start email verification.

    Returns:
        (account, tokens). tokens is None when REQUIRE_EMAIL_VERIFICATION is
        on; the client must verify the email and then log in.

    Raises:
        ConflictError: Email or phone already registered for this kind.
        WeakCredentialError: Password fails the strength policy.
    """
    account = await credential_service.register(
        db,
        kind=kind,
        email=email,
        password=password,
        profile=profile,
        phone=phone,
        password_min_length=settings.REGISTRATION_PASSWORD_MIN_LENGTH,
    )

    await activity_service.log_activity(db, "register", account=account, device=device)
    logger.info("account_registered", account_id=str(account.id), account_kind=kind.value)

    await otp_service.send(db, account, OtpPurpose.EMAIL_VERIFICATION, account.email, notifier)

    if settings.REQUIRE_EMAIL_VERIFICATION:
        return account, None

    tokens = await token_service.issue(db, account.id, account.kind, device)
    return account, tokens


# ---------------------------------------------------------------------------
# Login / refresh / logout
# ---------------------------------------------------------------------------

async def login(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    password: str,
    mfa_code: str | None = None,
    device: DeviceInfo | None = None,
) -> AuthResult:
    """
    Run the login state machine (see module docstring).

    Returns:
        AuthResult with tokens, or with mfa_required=True and no tokens when
        the account has MFA enabled and no code was supplied.

    Raises:
        AccountLockedError: Too many recent failures, checked before the
            password so a locked account never reveals whether it was right.
        UnauthorizedError: Unknown email or wrong password.
        AccountBlockedError / AccountDormantError / AccountInactiveError
        EmailNotVerifiedError: Verification required and not done yet.
        InvalidMfaCodeError: The supplied TOTP or backup code was wrong.
    """
    await lockout_service.check(db, email, kind)

    account = await credential_service.find_by_email(db, kind, email)
    if not await credential_service.verify_account_password(account, password):
        await lockout_service.record_failure(db, email, kind)
        # No account row to link to; keep a masked trace of what was tried
        details = None
        if account is None:
            details = {"identifier": mask_identifier(credential_service.normalize_email(email))}
        await activity_service.log_activity(
            db,
            "login",
            account=account,
            account_kind=kind,
            device=device,
            details=details,
            success=False,
            error_message="Invalid credentials",
        )
        logger.info("login_failed", account_kind=kind.value, reason="invalid_credentials")
        raise UnauthorizedError()

    ensure_can_login(account)

    if settings.REQUIRE_EMAIL_VERIFICATION and not account.email_verified:
        raise EmailNotVerifiedError()

    if account.mfa_enabled:
        if not mfa_code:
            await activity_service.log_activity(db, "mfa_challenge", account=account, device=device)
            return AuthResult(account=account, mfa_required=True, mfa_method=MFA_METHOD_TOTP)

        used_backup_code = False
        if not mfa_service.verify(account, mfa_code):
            used_backup_code = await mfa_service.verify_backup_code(db, account, mfa_code)
            if not used_backup_code:
                await lockout_service.record_failure(db, email, kind)
                await activity_service.log_activity(
                    db,
                    "login",
                    account=account,
                    device=device,
                    success=False,
                    error_message="Invalid MFA code",
                )
                logger.info("login_failed", account_id=str(account.id), reason="invalid_mfa_code")
                raise InvalidMfaCodeError()

        if used_backup_code:
            logger.info("backup_code_used", account_id=str(account.id))

    tokens = await token_service.issue(db, account.id, account.kind, device)
    account.last_login_at = utcnow()
    await lockout_service.record_success(db, email, kind)
    await activity_service.log_activity(
        db,
        "login",
        account=account,
        device=device,
        details={"session_id": str(tokens.session_id), "mfa": account.mfa_enabled},
    )
    logger.info("login_succeeded", account_id=str(account.id), account_kind=kind.value)

    return AuthResult(account=account, tokens=tokens)


async def refresh(
    db: AsyncSession,
    refresh_token: str,
    device: DeviceInfo | None = None,
) -> tuple[Account, TokenPair]:
    """
    Exchange a refresh token for a new pair (single-use rotation).

    Raises:
        InvalidTokenError: Bad or revoked token, or the owner can no longer
            log in.
    """
    claims, _ = await token_service.verify_refresh(db, refresh_token)

    account = await credential_service.get_account(db, claims.subject, claims.account_kind)
    if account is None or account.status != AccountStatus.ACTIVE:
        raise InvalidTokenError("Invalid refresh token")

    _, tokens = await token_service.rotate(db, refresh_token, device)
    return account, tokens


async def logout(
    db: AsyncSession,
    account: Account,
    refresh_token: str,
    device: DeviceInfo | None = None,
) -> bool:
    """Revoke the caller's session holding this refresh token. Idempotent."""
    revoked = await session_service.revoke_by_refresh_token(
        db, account.id, account.kind, refresh_token
    )
    await activity_service.log_activity(db, "logout", account=account, device=device)
    return revoked


async def logout_all(
    db: AsyncSession,
    account: Account,
    device: DeviceInfo | None = None,
) -> int:
    """Revoke every session of the caller. Returns how many were active."""
    count = await session_service.revoke_all(db, account.id, account.kind)
    await activity_service.log_activity(
        db, "logout_all", account=account, device=device, details={"sessions_revoked": count}
    )
    return count


async def revoke_session(
    db: AsyncSession,
    account: Account,
    session_id: uuid.UUID,
    device: DeviceInfo | None = None,
) -> None:
    """
    Raises:
        NotFoundError: No active session with this id belongs to the caller.
    """
    if not await session_service.revoke(db, account.id, account.kind, session_id):
        raise NotFoundError("Session not found")
    await activity_service.log_activity(
        db, "session_revoked", account=account, device=device, details={"session_id": str(session_id)}
    )


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

async def change_password(
    db: AsyncSession,
    account: Account,
    current_password: str,
    new_password: str,
    device: DeviceInfo | None = None,
) -> None:
    """
    Replace the password of a logged-in account and revoke all its sessions.

    Raises:
        UnauthorizedError: current_password is wrong.
        WeakCredentialError: new_password fails the strength policy.
    """
    if not await credential_service.verify_account_password(account, current_password):
        await activity_service.log_activity(
            db,
            "password_change",
            account=account,
            device=device,
            success=False,
            error_message="Current password is incorrect",
        )
        raise UnauthorizedError("Current password is incorrect")

    await credential_service.set_password(account, new_password)
    revoked = await session_service.revoke_all(db, account.id, account.kind)

    await activity_service.log_activity(
        db, "password_change", account=account, device=device, details={"sessions_revoked": revoked}
    )
    logger.info("password_changed", account_id=str(account.id), sessions_revoked=revoked)


async def forgot_password(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    notifier: Notifier,
    device: DeviceInfo | None = None,
) -> None:
    """Send a reset code if the account exists. Silent either way."""
    account = await credential_service.find_by_email(db, kind, email)
    if account is None:
        logger.info("password_reset_requested", account_kind=kind.value, known=False)
        return

    await otp_service.send(db, account, OtpPurpose.PASSWORD_RESET, account.email, notifier)
    await activity_service.log_activity(db, "password_reset_requested", account=account, device=device)
    logger.info("password_reset_requested", account_kind=kind.value, known=True)


async def reset_password(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    code: str,
    new_password: str,
    device: DeviceInfo | None = None,
) -> None:
    """
    Complete a password reset.

    The new password is validated before the code is touched, so a weak
    password does not burn the code. The remaining steps (consume the code,
    store the hash, revoke every session, clear the lockout) share the
    request transaction and commit together.

    Raises:
        WeakCredentialError: new_password fails the strength policy.
        InvalidOrExpiredOtpError: Wrong, used or expired code, or unknown
            account (indistinguishable on purpose).
    """
    credential_service.ensure_strong_password(new_password)

    account = await credential_service.find_by_email(db, kind, email)
    if account is None:
        raise InvalidOrExpiredOtpError()

    await otp_service.verify(db, OtpPurpose.PASSWORD_RESET, account, code)

    account.password_hash = await hash_password_async(new_password)
    revoked = await session_service.revoke_all(db, account.id, account.kind)
    await lockout_service.record_success(db, account.email, account.kind)

    await activity_service.log_activity(
        db, "password_reset", account=account, device=device, details={"sessions_revoked": revoked}
    )
    logger.info("password_reset", account_id=str(account.id), sessions_revoked=revoked)


# ---------------------------------------------------------------------------
# Email / phone verification
# ---------------------------------------------------------------------------

async def verify_email(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    code: str,
    device: DeviceInfo | None = None,
) -> Account:
    """
    Raises:
        InvalidOrExpiredOtpError: Wrong, used or expired code, or unknown account.
    """
    account = await credential_service.find_by_email(db, kind, email)
    if account is None:
        raise InvalidOrExpiredOtpError()

    await otp_service.verify(db, OtpPurpose.EMAIL_VERIFICATION, account, code)
    account.email_verified = True
    await activity_service.log_activity(db, "email_verified", account=account, device=device)
    return account


async def resend_verification(
    db: AsyncSession,
    kind: AccountKind,
    email: str,
    notifier: Notifier,
) -> None:
    """Send a fresh email verification code to an unverified account. Silent otherwise."""
    account = await credential_service.find_by_email(db, kind, email)
    if account is None or account.email_verified:
        return
    await otp_service.send(db, account, OtpPurpose.EMAIL_VERIFICATION, account.email, notifier)


async def send_phone_verification(
    db: AsyncSession,
    account: Account,
    notifier: Notifier,
    phone: str | None = None,
) -> None:
    """
    Send a phone verification code, optionally switching to a new number first.

    Raises:
        ConflictError: The new number belongs to another account of this kind.
        NotFoundError: No number given and none on file.
    """
    if phone and phone != account.phone:
        result = await db.execute(
            select(Account.id).where(
                Account.kind == account.kind,
                Account.phone == phone,
                Account.id != account.id,
            )
        )
        if result.first() is not None:
            raise ConflictError(f"{account.kind.value.capitalize()} with this phone already exists")
        account.phone = phone
        account.phone_verified = False

    if not account.phone:
        raise NotFoundError("No phone number on file")

    await otp_service.send(db, account, OtpPurpose.PHONE_VERIFICATION, account.phone, notifier)


async def verify_phone(
    db: AsyncSession,
    account: Account,
    code: str,
    device: DeviceInfo | None = None,
) -> None:
    """
    Raises:
        InvalidOrExpiredOtpError: Wrong, used or expired code.
    """
    await otp_service.verify(db, OtpPurpose.PHONE_VERIFICATION, account, code)
    account.phone_verified = True
    await activity_service.log_activity(db, "phone_verified", account=account, device=device)
