"""Pydantic schemas for MFA enrollment and backup codes."""

from pydantic import Field

from authcore.schemas.base import CamelModel


class MfaSetupResponse(CamelModel):
    """Pending secret for the authenticator app; confirm with POST /auth/mfa/verify."""
    secret: str
    otpauth_url: str


class MfaCodeRequest(CamelModel):
    code: str = Field(min_length=6, max_length=6)


class MfaDisableRequest(CamelModel):
    password: str


class BackupCodesResponse(CamelModel):
    backup_codes: list[str]
