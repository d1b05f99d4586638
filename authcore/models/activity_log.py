"""
ActivityLog model — append-only audit trail of security events.

account_id is nullable: failed logins against unknown identifiers are
recorded too, with the masked identifier in details.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime, utcnow
from authcore.models.account import AccountKind
from authcore.models.session import IP_ADDRESS_MAX_LENGTH, USER_AGENT_MAX_LENGTH


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    account_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    account_kind: Mapped[AccountKind | None] = mapped_column(Enum(AccountKind), nullable=True)

    # e.g. "login", "logout_all", "mfa_enable"
    action: Mapped[str] = mapped_column(String(64), nullable=False)

    ip_address: Mapped[str | None] = mapped_column(String(IP_ADDRESS_MAX_LENGTH), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(USER_AGENT_MAX_LENGTH), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
