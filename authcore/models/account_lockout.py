"""
AccountLockout model — failed-login bookkeeping per (identifier, kind).

Keyed by the login identifier rather than the account id so that attempts
against unknown emails are tracked the same way as attempts against real
ones.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime
from authcore.models.account import AccountKind


class AccountLockout(Base):
    __tablename__ = "account_lockouts"
    __table_args__ = (
        UniqueConstraint("identifier", "account_kind", name="uq_lockout_identifier_kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    account_kind: Mapped[AccountKind] = mapped_column(Enum(AccountKind), nullable=False)

    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
