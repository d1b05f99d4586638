"""
Sessions router — device management for the authenticated account.

Endpoints:
  GET    /auth/sessions               — List active sessions, newest first
  DELETE /auth/sessions/{session_id}  — Revoke one session

Revocation is scoped to the caller: a session id belonging to another
account yields 404, exactly like an id that does not exist.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import get_db
from authcore.dependencies import get_current_account, get_device_info
from authcore.models.account import Account
from authcore.schemas.base import MessageResponse
from authcore.schemas.session import SessionResponse
from authcore.services import auth_service, session_service
from authcore.services.session_service import DeviceInfo

router = APIRouter()


@router.get("", response_model=list[SessionResponse], summary="List active sessions")
async def list_sessions(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await session_service.list_active(db, account.id, account.kind)


@router.delete("/{session_id}", response_model=MessageResponse, summary="Revoke a session")
async def revoke_session(
    session_id: uuid.UUID,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    device: DeviceInfo = Depends(get_device_info),
):
    await auth_service.revoke_session(db, account, session_id, device)
    return MessageResponse(message="Session revoked")
