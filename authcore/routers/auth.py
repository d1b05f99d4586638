"""
Authentication router — registration, login, tokens, verification, passwords.

Public endpoints:
  POST /auth/register                  — Register a user
  POST /auth/register/agency           — Register an agency
  POST /auth/login                     — Log in (two-phase when MFA is on)
  POST /auth/refresh                   — Rotate a refresh token
  POST /auth/verify-email              — Confirm the email verification code
  POST /auth/resend-verification       — Send a new email verification code
  POST /auth/forgot-password           — Send a password reset code
  POST /auth/reset-password            — Reset the password with the code

Authenticated endpoints (Authorization: Bearer <access token>):
  GET  /auth/profile                   — Account summary and profile
  POST /auth/logout                    — Revoke the session of one refresh token
  POST /auth/logout-all                — Revoke every session
  POST /auth/change-password           — Change password, revoke every session
  POST /auth/phone/send-verification   — Send a phone verification code
  POST /auth/phone/verify              — Confirm the phone verification code
  GET  /auth/activity                  — Recent security events

Refresh tokens travel in request bodies, never in headers. Plaintext
passwords, codes and tokens exist only in memory during request processing
and are never logged.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import get_db
from authcore.dependencies import get_current_account, get_device_info
from authcore.models.account import Account, AccountKind
from authcore.schemas.account import ProfileResponse
from authcore.schemas.auth import (
    AgencyRegisterRequest,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    MfaChallengeResponse,
    PhoneVerificationRequest,
    PhoneVerifyRequest,
    RefreshRequest,
    RegisterResponse,
    ResendVerificationRequest,
    TokenResponse,
    UserRegisterRequest,
    VerifyEmailRequest,
)
from authcore.schemas.base import MessageResponse
from authcore.schemas.password import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
)
from authcore.schemas.session import ActivityResponse
from authcore.services import activity_service, auth_service
from authcore.services.notification_service import Notifier, get_notifier
from authcore.services.session_service import DeviceInfo
from authcore.services.token_service import TokenPair

router = APIRouter()

_USER_PROFILE_FIELDS = {"first_name", "last_name", "date_of_birth", "gender", "nationality"}
_AGENCY_PROFILE_FIELDS = _USER_PROFILE_FIELDS | {"agency_name", "business_type", "description"}

RESET_REQUESTED_MESSAGE = "If an account exists with this email, a password reset code has been sent"
VERIFICATION_SENT_MESSAGE = "If the account exists and is unverified, a verification code has been sent"


def _token_response(account: Account, tokens: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user_id=account.id,
        account_type=account.kind,
    )


def _register_response(account: Account, tokens: TokenPair | None) -> RegisterResponse:
    response = RegisterResponse(
        user_id=account.id,
        account_type=account.kind,
        email=account.email,
        email_verification_required=settings.REQUIRE_EMAIL_VERIFICATION,
    )
    if tokens is not None:
        response.access_token = tokens.access_token
        response.refresh_token = tokens.refresh_token
        response.token_type = "Bearer"
        response.expires_in = tokens.expires_in
    return response


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register_user(
    request: UserRegisterRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    device: DeviceInfo = Depends(get_device_info),
):
    """
    Register an individual user.

    An email verification code is sent to the address. Whether tokens are
    returned immediately depends on REQUIRE_EMAIL_VERIFICATION.
    """
    account, tokens = await auth_service.register(
        db,
        kind=AccountKind.USER,
        email=request.email,
        password=request.password,
        profile=request.model_dump(include=_USER_PROFILE_FIELDS, mode="json"),
        phone=request.phone,
        notifier=notifier,
        device=device,
    )
    return _register_response(account, tokens)


@router.post(
    "/register/agency",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new agency",
)
async def register_agency(
    request: AgencyRegisterRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    device: DeviceInfo = Depends(get_device_info),
):
    """Register an agency. Same flow as user registration with agency profile fields."""
    account, tokens = await auth_service.register(
        db,
        kind=AccountKind.AGENCY,
        email=request.email,
        password=request.password,
        profile=request.model_dump(include=_AGENCY_PROFILE_FIELDS, mode="json"),
        phone=request.phone,
        notifier=notifier,
        device=device,
    )
    return _register_response(account, tokens)


# ---------------------------------------------------------------------------
# Login / tokens
# ---------------------------------------------------------------------------

@router.post(
    "/login",
    response_model=TokenResponse | MfaChallengeResponse,
    summary="Authenticate and get tokens",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """
    Authenticate with email and password.

    For an MFA-enabled account the first call (no mfaCode) returns
    `{"mfaRequired": true, "mfaMethod": "totp"}` without tokens. Repeat the
    request with `mfaCode` set to a TOTP code or an unused backup code.
    """
    result = await auth_service.login(
        db,
        kind=request.account_type,
        email=request.email,
        password=request.password,
        mfa_code=request.mfa_code,
        device=device,
    )

    if result.mfa_required:
        return MfaChallengeResponse(
            mfa_method=result.mfa_method,
            user_id=result.account.id,
            account_type=result.account.kind,
        )
    return _token_response(result.account, result.tokens)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Exchange a refresh token for a new token pair",
)
async def refresh(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """The presented refresh token is retired; use the returned one next time."""
    account, tokens = await auth_service.refresh(db, request.refresh_token, device)
    return _token_response(account, tokens)


@router.post("/logout", response_model=MessageResponse, summary="Log out of one session")
async def logout(
    request: LogoutRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    await auth_service.logout(db, account, request.refresh_token, device)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutAllResponse, summary="Log out of every session")
async def logout_all(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    count = await auth_service.logout_all(db, account, device)
    return LogoutAllResponse(message="Logged out from all devices", sessions_revoked=count)


# ---------------------------------------------------------------------------
# Profile and activity
# ---------------------------------------------------------------------------

@router.get("/profile", response_model=ProfileResponse, summary="Get the caller's profile")
async def get_profile(account: Account = Depends(get_current_account)):
    return ProfileResponse(
        id=account.id,
        account_type=account.kind,
        email=account.email,
        phone=account.phone,
        status=account.status,
        email_verified=account.email_verified,
        phone_verified=account.phone_verified,
        mfa_enabled=account.mfa_enabled,
        last_login_at=account.last_login_at,
        created_at=account.created_at,
        profile=account.profile,
    )


@router.get(
    "/activity",
    response_model=list[ActivityResponse],
    summary="Recent security events of the caller",
)
async def list_activity(
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await activity_service.list_recent(db, account.id, account.kind, limit=limit)


# ---------------------------------------------------------------------------
# Email / phone verification
# ---------------------------------------------------------------------------

@router.post("/verify-email", response_model=MessageResponse, summary="Verify the email address")
async def verify_email(
    request: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    await auth_service.verify_email(db, request.account_type, request.email, request.code, device)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    summary="Resend the email verification code",
)
async def resend_verification(
    request: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    await auth_service.resend_verification(db, request.account_type, request.email, notifier)
    return MessageResponse(message=VERIFICATION_SENT_MESSAGE)


@router.post(
    "/phone/send-verification",
    response_model=MessageResponse,
    summary="Send a phone verification code",
)
async def send_phone_verification(
    request: PhoneVerificationRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    await auth_service.send_phone_verification(db, account, notifier, phone=request.phone)
    return MessageResponse(message="Verification code sent")


@router.post("/phone/verify", response_model=MessageResponse, summary="Verify the phone number")
async def verify_phone(
    request: PhoneVerifyRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    await auth_service.verify_phone(db, account, request.code, device)
    return MessageResponse(message="Phone verified successfully")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

@router.post("/forgot-password", response_model=MessageResponse, summary="Request a password reset code")
async def forgot_password(
    request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    device: DeviceInfo = Depends(get_device_info),
):
    """Always returns the same message, whether or not the account exists."""
    await auth_service.forgot_password(db, request.account_type, request.email, notifier, device)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse, summary="Reset the password")
async def reset_password(
    request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """
    Set a new password using the emailed code. Every existing session is
    revoked and any lockout is cleared.
    """
    await auth_service.reset_password(
        db,
        kind=request.account_type,
        email=request.email,
        code=request.code,
        new_password=request.new_password,
        device=device,
    )
    return MessageResponse(message="Password reset successfully")


@router.post("/change-password", response_model=MessageResponse, summary="Change the password")
async def change_password(
    request: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """Requires the current password. Every session is revoked; log in again afterwards."""
    await auth_service.change_password(
        db, account, request.current_password, request.new_password, device
    )
    return MessageResponse(message="Password changed successfully")
