"""
Account model — the unified identity for users and agencies.

Individual users and agencies share one table and one capability set
(credentials, status, MFA, sessions, lockout, roles). The only thing that
differs by kind is the profile payload, stored as a JSON variant in
`profile`:

  - user:   {"first_name", "last_name", "date_of_birth", "gender", "nationality"}
  - agency: the user fields plus {"agency_name", "business_type", "description"}

Email and phone are unique per kind, not globally: the same address may hold
one user account and one agency account.

Statuses:
  - ACTIVE:    may log in
  - SUSPENDED: administratively paused, login refused
  - BLOCKED:   login refused
  - DORMANT:   login refused until recovery
  - CLOSED:    login refused

The TOTP secret is Fernet-encrypted (see security.encrypt_value) and only
present while mfa_enabled is true.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, JSON, LargeBinary, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.database import Base, UTCDateTime, utcnow


class AccountKind(str, enum.Enum):
    """Which principal an account represents. Serialized as the lowercase value."""
    USER = "user"
    AGENCY = "agency"


class AccountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    BLOCKED = "BLOCKED"
    DORMANT = "DORMANT"
    CLOSED = "CLOSED"


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("kind", "email", name="uq_accounts_kind_email"),
        UniqueConstraint("kind", "phone", name="uq_accounts_kind_phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    kind: Mapped[AccountKind] = mapped_column(
        Enum(AccountKind),
        nullable=False,
        index=True,
    )

    # Stored lowercased; lookups lowercase their input too
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Argon2id hash. Nullable for accounts provisioned without a password;
    # such accounts cannot log in with credentials.
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus),
        default=AccountStatus.ACTIVE,
        nullable=False,
    )

    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    mfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mfa_secret: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    # Kind-specific profile variant (see module docstring)
    profile: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

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
