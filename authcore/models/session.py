"""
Session model — one server-side record per issued refresh token.

A refresh token's signature alone is never trusted: the token is valid only
while a Session holding that exact string is active and unexpired. Sessions
are never physically deleted; revocation flips is_active to False, which also
keeps the device history for the sessions UI and audits.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime, utcnow
from authcore.models.account import AccountKind

USER_AGENT_MAX_LENGTH = 512
IP_ADDRESS_MAX_LENGTH = 64


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    account_kind: Mapped[AccountKind] = mapped_column(Enum(AccountKind), nullable=False)

    # Opaque random handle, independent of the JWT
    session_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    refresh_token: Mapped[str] = mapped_column(
        String(2048),
        unique=True,
        nullable=False,
        index=True,
    )

    # Device metadata
    user_agent: Mapped[str | None] = mapped_column(String(USER_AGENT_MAX_LENGTH), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(IP_ADDRESS_MAX_LENGTH), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
