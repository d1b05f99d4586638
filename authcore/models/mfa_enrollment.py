"""
MfaEnrollment model — a TOTP secret awaiting proof of possession.

Enrollment is two-step. generate_secret() stores the new secret here
(encrypted, with a short TTL) and the account stays MFA-disabled. Only
confirm_enable() with a valid code moves the secret onto the account. The
client never sends the secret back; the pending record is the source of truth.

One pending enrollment per account: starting again replaces the old one.
"""

import uuid
from datetime import datetime

from sqlalchemy import LargeBinary, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime, utcnow


class MfaEnrollment(Base):
    __tablename__ = "mfa_enrollments"

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        primary_key=True,
    )

    secret: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
