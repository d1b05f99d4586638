"""Pydantic schemas for password reset and change."""

from pydantic import EmailStr, Field

from authcore.models.account import AccountKind
from authcore.schemas.base import CamelModel


class ForgotPasswordRequest(CamelModel):
    email: EmailStr
    account_type: AccountKind = AccountKind.USER


class ResetPasswordRequest(CamelModel):
    email: EmailStr
    account_type: AccountKind = AccountKind.USER
    code: str = Field(min_length=6, max_length=6)
    new_password: str = Field(min_length=1, max_length=256)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=1, max_length=256)
