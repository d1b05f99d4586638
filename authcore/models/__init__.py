"""
SQLAlchemy ORM models package.

All models are imported here so that Base.metadata knows every table before
create_all() runs, and so other modules can import from authcore.models.
"""

from authcore.models.account import Account, AccountKind, AccountStatus  # noqa: F401
from authcore.models.session import Session  # noqa: F401
from authcore.models.otp_code import OtpCode, OtpPurpose  # noqa: F401
from authcore.models.backup_code import BackupCode  # noqa: F401
from authcore.models.account_lockout import AccountLockout  # noqa: F401
from authcore.models.rbac import Permission, Role, RoleAssignment, role_permissions  # noqa: F401
from authcore.models.mfa_enrollment import MfaEnrollment  # noqa: F401
from authcore.models.activity_log import ActivityLog  # noqa: F401
