"""
FastAPI dependencies for authentication and request context.

Dependency chain:

  get_current_account (access token -> Account)
      └── require_policy(name) (Account -> Account)   [authcore/authorization.py]

get_current_account is the first line of defense: a missing, expired or
tampered access token, or a token whose account is gone or no longer ACTIVE,
is rejected with 401 before the route handler runs.

Access tokens are verified statelessly (signature + expiry). Revoking a
session stops its refresh token immediately; access tokens already handed
out stay valid until they expire (ACCESS_TOKEN_EXPIRE_MINUTES).
"""

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database import get_db
from authcore.exceptions import InvalidTokenError
from authcore.models.account import Account, AccountStatus
from authcore.models.session import IP_ADDRESS_MAX_LENGTH, USER_AGENT_MAX_LENGTH
from authcore.services import credential_service, token_service
from authcore.services.session_service import DeviceInfo


# Reads "Authorization: Bearer <token>". auto_error=False so a missing header
# goes through the same InvalidTokenError response as a bad token.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


async def get_current_account(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """
    Resolve the bearer access token to its Account.

    Raises:
        InvalidTokenError: No token, bad token, or the account is missing or
            not ACTIVE.
    """
    if not token:
        raise InvalidTokenError("Not authenticated")

    claims = token_service.verify_access(token)

    account = await credential_service.get_account(db, claims.subject, claims.account_kind)
    if account is None or account.status != AccountStatus.ACTIVE:
        raise InvalidTokenError("Could not validate credentials")

    return account


def get_device_info(request: Request) -> DeviceInfo:
    """
    Client metadata stored on sessions and activity log entries.

    Values are clipped to their column sizes; the User-Agent header is
    client-controlled and unbounded.
    """
    user_agent = request.headers.get("user-agent")
    ip_address = request.client.host if request.client else None
    return DeviceInfo(
        user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH] if ip_address else None,
    )
