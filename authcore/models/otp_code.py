"""
OtpCode model — short-lived, single-use verification codes.

Codes are scoped to (account, kind, purpose). Several stale codes may exist
for the same scope; verification only ever selects an unused, unexpired one
and consumes it with a conditional update.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime, utcnow
from authcore.models.account import AccountKind


class OtpPurpose(str, enum.Enum):
    SIGNUP = "signup"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"
    PHONE_VERIFICATION = "phone_verification"
    MFA_VERIFICATION = "mfa_verification"


class OtpCode(Base):
    __tablename__ = "otp_codes"
    __table_args__ = (
        Index("ix_otp_codes_scope", "account_id", "account_kind", "purpose"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    account_kind: Mapped[AccountKind] = mapped_column(Enum(AccountKind), nullable=False)
    purpose: Mapped[OtpPurpose] = mapped_column(Enum(OtpPurpose), nullable=False)

    # Where the code was sent (email address or phone number)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)

    code: Mapped[str] = mapped_column(String(6), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
