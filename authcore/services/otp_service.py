"""
OTP service — short-lived, single-use verification codes.

Used for email verification, phone verification and password reset. This is
independent of MFA: OTPs prove control of a delivery channel, TOTP codes
prove possession of an enrolled device.

send():
  Generates a 6-digit code valid for OTP_EXPIRE_MINUTES, stores it, and
  hands it to the notifier. Delivery failures are logged and swallowed; from
  the caller's point of view send() always succeeds.

verify():
  Picks the newest unused, unexpired code matching the scope and the
  submitted value, then consumes it with a conditional UPDATE
  (`... WHERE is_used = false`). Only one of two concurrent verifications of
  the same code can win that update, so a code is accepted at most once.
"""

import uuid
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import utcnow
from authcore.exceptions import InvalidOrExpiredOtpError
from authcore.logging import get_logger
from authcore.models.account import Account
from authcore.models.otp_code import OtpCode, OtpPurpose
from authcore.security import generate_numeric_code
from authcore.services.notification_service import Notifier

logger = get_logger(__name__)

_SUBJECTS = {
    OtpPurpose.SIGNUP: "Verify Your Account",
    OtpPurpose.LOGIN: "Login Verification Code",
    OtpPurpose.PASSWORD_RESET: "Password Reset Code",
    OtpPurpose.EMAIL_VERIFICATION: "Email Verification Code",
    OtpPurpose.PHONE_VERIFICATION: "Phone Verification Code",
    OtpPurpose.MFA_VERIFICATION: "MFA Verification Code",
}


def _render(code: str) -> str:
    return (
        f"Your verification code is: {code}\n\n"
        f"This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes.\n"
        "If you didn't request this code, please ignore this message."
    )


async def send(
    db: AsyncSession,
    account: Account,
    purpose: OtpPurpose,
    destination: str,
    notifier: Notifier,
) -> OtpCode:
    """
    Create a code for (account, purpose) and dispatch it to destination.

    Returns:
        The stored OtpCode. Callers must not echo its code back to clients.
    """
    otp = OtpCode(
        account_id=account.id,
        account_kind=account.kind,
        purpose=purpose,
        destination=destination,
        code=generate_numeric_code(6),
        expires_at=utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
        is_used=False,
    )
    db.add(otp)
    await db.flush()

    try:
        await notifier.send(
            destination,
            _render(otp.code),
            subject=f"{_SUBJECTS[purpose]} - {settings.APP_NAME}",
        )
    except Exception as exc:
        logger.warning(
            "otp_delivery_failed",
            purpose=purpose.value,
            account_id=str(account.id),
            error=type(exc).__name__,
        )

    return otp


async def verify(
    db: AsyncSession,
    purpose: OtpPurpose,
    account: Account,
    code: str,
) -> OtpCode:
    """
    Consume a valid code for (account, purpose).

    Returns:
        The consumed OtpCode.

    Raises:
        InvalidOrExpiredOtpError: No unused, unexpired code matches, or the
            code was consumed concurrently.
    """
    result = await db.execute(
        select(OtpCode.id)
        .where(
            OtpCode.account_id == account.id,
            OtpCode.account_kind == account.kind,
            OtpCode.purpose == purpose,
            OtpCode.code == code.strip(),
            OtpCode.is_used.is_(False),
            OtpCode.expires_at > utcnow(),
        )
        .order_by(OtpCode.created_at.desc())
        .limit(1)
    )
    otp_id: uuid.UUID | None = result.scalar_one_or_none()
    if otp_id is None:
        raise InvalidOrExpiredOtpError()

    consumed = await db.execute(
        update(OtpCode)
        .where(OtpCode.id == otp_id, OtpCode.is_used.is_(False))
        .values(is_used=True)
    )
    if consumed.rowcount != 1:
        raise InvalidOrExpiredOtpError()

    return await db.get(OtpCode, otp_id)
