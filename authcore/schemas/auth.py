"""
Pydantic schemas for registration, login, token and verification endpoints.

Password strength is not validated here: the service layer checks the full
policy and reports every violation at once (WeakCredentialError, 422).
"""

import uuid
from datetime import date
from typing import Literal

from pydantic import EmailStr, Field

from authcore.models.account import AccountKind
from authcore.schemas.base import CamelModel


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class UserRegisterRequest(CamelModel):
    """Request body for POST /auth/register."""
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=32)
    date_of_birth: date | None = None
    gender: str | None = Field(None, max_length=32)
    nationality: str | None = Field(None, max_length=100)


class AgencyRegisterRequest(UserRegisterRequest):
    """Request body for POST /auth/register/agency."""
    agency_name: str = Field(min_length=1, max_length=200)
    business_type: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)


class RegisterResponse(CamelModel):
    """
    Tokens are present only when email verification is not required;
    otherwise the client verifies the email and then logs in.
    """
    user_id: uuid.UUID
    account_type: AccountKind
    email: str
    email_verification_required: bool
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None


# ---------------------------------------------------------------------------
# Login and tokens
# ---------------------------------------------------------------------------

class LoginRequest(CamelModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str
    account_type: AccountKind = AccountKind.USER
    mfa_code: str | None = Field(None, max_length=32)


class TokenResponse(CamelModel):
    """Successful login or refresh."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user_id: uuid.UUID
    account_type: AccountKind
    mfa_required: Literal[False] = False


class MfaChallengeResponse(CamelModel):
    """First phase of an MFA login: no tokens yet, resubmit with mfaCode."""
    mfa_required: Literal[True] = True
    mfa_method: str
    user_id: uuid.UUID
    account_type: AccountKind


class RefreshRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: str


class LogoutAllResponse(CamelModel):
    message: str
    sessions_revoked: int


# ---------------------------------------------------------------------------
# Email / phone verification
# ---------------------------------------------------------------------------

class VerifyEmailRequest(CamelModel):
    email: EmailStr
    account_type: AccountKind = AccountKind.USER
    code: str = Field(min_length=6, max_length=6)


class ResendVerificationRequest(CamelModel):
    email: EmailStr
    account_type: AccountKind = AccountKind.USER


class PhoneVerificationRequest(CamelModel):
    """Optional new number; omitted means the number already on file."""
    phone: str | None = Field(None, min_length=4, max_length=32)


class PhoneVerifyRequest(CamelModel):
    code: str = Field(min_length=6, max_length=6)
