"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (AccountLockedError,
InvalidTokenError, ...) without importing HTTP concepts. The handler
registered here translates each one into a JSON response of the form:

    {"detail": "...", "error_type": "...", <extra fields>}

Exception hierarchy:
    AuthCoreError (base)
    ├── ConflictError             409 — duplicate email/phone for an account kind
    ├── WeakCredentialError       422 — password policy violations (all of them)
    ├── UnauthorizedError         401 — bad credentials, deliberately generic
    ├── AccountLockedError        423 — too many failed attempts
    ├── AccountBlockedError       403
    ├── AccountDormantError       403
    ├── AccountInactiveError      403 — suspended or closed accounts
    ├── EmailNotVerifiedError     403
    ├── InvalidMfaCodeError       401
    ├── MfaStateError             409 — enrollment step out of order
    ├── InvalidOrExpiredOtpError  400
    ├── InvalidTokenError         401
    ├── ForbiddenError            403 — authorization policy denied
    ├── RoleNotFoundError         404
    ├── PermissionNotFoundError   404
    └── NotFoundError             404

Messages are stable strings; none of these errors is retried internally.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class AuthCoreError(Exception):
    """Base exception for all identity-service domain errors."""

    status_code: int = 400
    error_type: str = "auth_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def extra(self) -> dict[str, Any]:
        """Additional fields merged into the JSON error body."""
        return {}


# ---------------------------------------------------------------------------
# Credential and identity errors
# ---------------------------------------------------------------------------

class ConflictError(AuthCoreError):
    """Raised when an account with the same email or phone already exists for a kind."""

    status_code = 409
    error_type = "conflict"

    def __init__(self, detail: str = "An account with this email or phone already exists"):
        super().__init__(detail)


class WeakCredentialError(AuthCoreError):
    """
    Raised when a password fails the strength policy.

    Attributes:
        errors: Every violated rule, not just the first one.
    """

    status_code = 422
    error_type = "weak_credential"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Password does not meet the strength requirements")

    def extra(self) -> dict[str, Any]:
        return {"errors": self.errors}


class UnauthorizedError(AuthCoreError):
    """Raised for bad credentials. The message never says which part was wrong."""

    status_code = 401
    error_type = "unauthorized"

    def __init__(self, detail: str = "Invalid credentials"):
        super().__init__(detail)


class AccountLockedError(AuthCoreError):
    """Raised when the lockout guard refuses a login attempt."""

    status_code = 423
    error_type = "account_locked"

    def __init__(self, minutes_remaining: int):
        self.minutes_remaining = minutes_remaining
        super().__init__(
            "Account is locked due to too many failed login attempts. "
            f"Please try again in {minutes_remaining} minutes."
        )

    def extra(self) -> dict[str, Any]:
        return {"minutes_remaining": self.minutes_remaining}


class AccountBlockedError(AuthCoreError):
    status_code = 403
    error_type = "account_blocked"

    def __init__(self):
        super().__init__("Account is blocked")


class AccountDormantError(AuthCoreError):
    status_code = 403
    error_type = "account_dormant"

    def __init__(self):
        super().__init__("Account is dormant, recovery required")


class AccountInactiveError(AuthCoreError):
    """Raised for SUSPENDED or CLOSED accounts."""

    status_code = 403
    error_type = "account_inactive"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Account is {status.lower()}")


class EmailNotVerifiedError(AuthCoreError):
    status_code = 403
    error_type = "email_not_verified"

    def __init__(self):
        super().__init__("Please verify your email before logging in")


# ---------------------------------------------------------------------------
# MFA / OTP / token errors
# ---------------------------------------------------------------------------

class InvalidMfaCodeError(AuthCoreError):
    status_code = 401
    error_type = "invalid_mfa_code"

    def __init__(self, detail: str = "Invalid MFA code"):
        super().__init__(detail)


class MfaStateError(AuthCoreError):
    """Raised when an MFA operation does not fit the account's enrollment state."""

    status_code = 409
    error_type = "mfa_state"


class InvalidOrExpiredOtpError(AuthCoreError):
    status_code = 400
    error_type = "invalid_or_expired_otp"

    def __init__(self):
        super().__init__("Invalid or expired OTP")


class InvalidTokenError(AuthCoreError):
    status_code = 401
    error_type = "invalid_token"

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Authorization and lookup errors
# ---------------------------------------------------------------------------

class ForbiddenError(AuthCoreError):
    status_code = 403
    error_type = "forbidden"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail)


class RoleNotFoundError(AuthCoreError):
    status_code = 404
    error_type = "role_not_found"

    def __init__(self, role_name: str):
        self.role_name = role_name
        super().__init__(f"Role '{role_name}' not found")


class PermissionNotFoundError(AuthCoreError):
    status_code = 404
    error_type = "permission_not_found"

    def __init__(self, permission_name: str):
        self.permission_name = permission_name
        super().__init__(f"Permission '{permission_name}' not found")


class NotFoundError(AuthCoreError):
    status_code = 404
    error_type = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handler
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain-error handler with the FastAPI application.

    Every AuthCoreError subclass carries its own status code and error_type,
    so one handler covers the whole hierarchy. 401 responses include the
    WWW-Authenticate header expected by bearer-token clients.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(AuthCoreError)
    async def auth_core_error_handler(
        request: Request, exc: AuthCoreError
    ) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type, **exc.extra()},
            headers=headers,
        )
