"""
Token service — issuing, verifying and rotating bearer tokens.

Two token types share one claim shape:

    {"sub": <account id>, "kind": "user"|"agency", "typ": "access"|"refresh",
     "iat": <issued at>, "exp": <expiry>, "jti": <unique id>}

  - Access tokens live ACCESS_TOKEN_EXPIRE_MINUTES and are signed with
    ACCESS_TOKEN_SECRET. They are verified statelessly.
  - Refresh tokens live REFRESH_TOKEN_EXPIRE_DAYS and are signed with
    REFRESH_TOKEN_SECRET. Each one is persisted as a Session, and a refresh
    token is accepted only if its signature is valid AND an active, unexpired
    Session holds that exact string. A revoked token with a perfectly good
    signature is rejected.

The jti claim makes every token string unique even when two pairs are issued
for the same account within the same second.

Rotation policy: refresh tokens are single-use. rotate() deactivates the
presented session before issuing the replacement, so a stolen refresh token
stops working as soon as either party uses it.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.database import utcnow
from authcore.exceptions import InvalidTokenError
from authcore.logging import get_logger
from authcore.models.account import AccountKind
from authcore.models.session import Session
from authcore.security import decode_jwt, encode_jwt
from authcore.services import session_service
from authcore.services.session_service import DeviceInfo

logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    subject: uuid.UUID
    account_kind: AccountKind
    token_type: str
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    # Access-token lifetime in seconds
    expires_in: int
    session_id: uuid.UUID


def _sign(account_id: uuid.UUID, account_kind: AccountKind, token_type: str) -> str:
    now = utcnow()
    if token_type == ACCESS:
        secret = settings.ACCESS_TOKEN_SECRET
        expires_at = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    else:
        secret = settings.REFRESH_TOKEN_SECRET
        expires_at = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    claims = {
        "sub": str(account_id),
        "kind": account_kind.value,
        "typ": token_type,
        "iat": now,
        "jti": uuid.uuid4().hex,
    }
    return encode_jwt(claims, secret, expires_at)


def _parse(token: str, secret: str, expected_type: str) -> TokenClaims:
    try:
        payload = decode_jwt(token, secret)
        if payload.get("typ") != expected_type:
            raise InvalidTokenError()
        return TokenClaims(
            subject=uuid.UUID(payload["sub"]),
            account_kind=AccountKind(payload["kind"]),
            token_type=payload["typ"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_id=payload["jti"],
        )
    except (JWTError, KeyError, TypeError, ValueError):
        raise InvalidTokenError()


async def issue(
    db: AsyncSession,
    account_id: uuid.UUID,
    account_kind: AccountKind,
    device: DeviceInfo | None = None,
) -> TokenPair:
    """
    Issue an access/refresh pair and register the refresh token as a Session.

    Returns:
        The token pair, including the id of the new session.
    """
    access_token = _sign(account_id, account_kind, ACCESS)
    refresh_token = _sign(account_id, account_kind, REFRESH)

    session = await session_service.create_session(
        db,
        account_id=account_id,
        account_kind=account_kind,
        refresh_token=refresh_token,
        device=device,
    )

    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        session_id=session.id,
    )


def verify_access(token: str) -> TokenClaims:
    """
    Verify an access token's signature, type and expiry.

    Raises:
        InvalidTokenError: Bad signature, malformed, wrong type, or expired.
    """
    return _parse(token, settings.ACCESS_TOKEN_SECRET, ACCESS)


async def verify_refresh(db: AsyncSession, token: str) -> tuple[TokenClaims, Session]:
    """
    Verify a refresh token against its signature AND the session registry.

    Raises:
        InvalidTokenError: Bad signature, or no active unexpired session holds
            this token, or the session belongs to a different account.
    """
    claims = _parse(token, settings.REFRESH_TOKEN_SECRET, REFRESH)

    session = await session_service.find_by_refresh_token(db, token)
    if session is None:
        logger.info("refresh_token_rejected", reason="no_active_session")
        raise InvalidTokenError("Invalid refresh token")

    if session.account_id != claims.subject or session.account_kind != claims.account_kind:
        logger.warning("refresh_token_rejected", reason="owner_mismatch")
        raise InvalidTokenError("Invalid refresh token")

    return claims, session


async def rotate(
    db: AsyncSession,
    old_refresh_token: str,
    device: DeviceInfo | None = None,
) -> tuple[TokenClaims, TokenPair]:
    """
    Exchange a refresh token for a new pair, retiring the old one.

    The replacement session keeps the old session's device metadata unless
    new metadata is supplied.

    Raises:
        InvalidTokenError: If the presented token fails verify_refresh().
    """
    claims, old_session = await verify_refresh(db, old_refresh_token)

    revoked = await session_service.revoke(
        db, claims.subject, claims.account_kind, old_session.id
    )
    if not revoked:
        # Lost a race with a concurrent rotation or logout of the same token
        raise InvalidTokenError("Invalid refresh token")

    if device is None:
        device = DeviceInfo(user_agent=old_session.user_agent, ip_address=old_session.ip_address)

    pair = await issue(db, claims.subject, claims.account_kind, device)
    return claims, pair
