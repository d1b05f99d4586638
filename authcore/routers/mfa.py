"""
MFA router — TOTP enrollment and backup codes for the authenticated account.

Endpoints:
  POST /auth/mfa/enable                 — Start enrollment, returns secret + otpauth URL
  POST /auth/mfa/verify                 — Confirm enrollment with a code, returns backup codes
  POST /auth/mfa/disable                — Turn MFA off (requires the password)
  POST /auth/mfa/backup-codes/generate  — Replace all backup codes
  GET  /auth/mfa/backup-codes           — List unused backup codes

The pending secret is held server-side between enable and verify; the client
only ever sends the 6-digit code back.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import get_db
from authcore.dependencies import get_current_account, get_device_info
from authcore.models.account import Account
from authcore.schemas.base import MessageResponse
from authcore.schemas.mfa import (
    BackupCodesResponse,
    MfaCodeRequest,
    MfaDisableRequest,
    MfaSetupResponse,
)
from authcore.services import activity_service, mfa_service
from authcore.services.session_service import DeviceInfo

router = APIRouter()


@router.post("/enable", response_model=MfaSetupResponse, summary="Start MFA enrollment")
async def enable_mfa(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """
    Generate a TOTP secret. Add it to an authenticator app (scan the
    otpauthUrl as a QR code), then confirm with POST /auth/mfa/verify within
    MFA_ENROLLMENT_TTL_MINUTES.
    """
    setup = await mfa_service.generate_secret(db, account)
    return MfaSetupResponse(secret=setup.secret, otpauth_url=setup.otpauth_url)


@router.post("/verify", response_model=BackupCodesResponse, summary="Confirm MFA enrollment")
async def verify_mfa(
    request: MfaCodeRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """
    Enable MFA. The returned backup codes are single-use; a wrong code
    discards the pending secret and enrollment must be restarted.
    """
    codes = await mfa_service.confirm_enable(db, account, request.code)
    await activity_service.log_activity(db, "mfa_enabled", account=account, device=device)
    return BackupCodesResponse(backup_codes=codes)


@router.post("/disable", response_model=MessageResponse, summary="Disable MFA")
async def disable_mfa(
    request: MfaDisableRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    await mfa_service.disable(db, account, request.password)
    await activity_service.log_activity(db, "mfa_disabled", account=account, device=device)
    return MessageResponse(message="MFA disabled successfully")


@router.post(
    "/backup-codes/generate",
    response_model=BackupCodesResponse,
    summary="Regenerate backup codes",
)
async def regenerate_backup_codes(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    """All previous backup codes stop working immediately."""
    codes = await mfa_service.regenerate_backup_codes(db, account)
    await activity_service.log_activity(db, "backup_codes_regenerated", account=account, device=device)
    return BackupCodesResponse(backup_codes=codes)


@router.get("/backup-codes", response_model=BackupCodesResponse, summary="List unused backup codes")
async def list_backup_codes(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    codes = await mfa_service.list_backup_codes(db, account)
    return BackupCodesResponse(backup_codes=codes)
