"""
Security utilities: password hashing and policy, JWT signing, secret
encryption and random code generation.

All cryptographic primitives live here so they are easy to audit and swap.

1. PASSWORD HASHING (Argon2id via passlib)
   - Cost parameters come from settings (PASSWORD_HASH_TIME_COST /
     PASSWORD_HASH_MEMORY_COST) so deployments can tune them.
   - Hashing is CPU-bound and deliberately slow. The async wrappers run it in
     worker threads behind a dedicated capacity limiter, so a burst of logins
     cannot starve the thread pool that serves other blocking calls.

2. PASSWORD POLICY
   - Minimum length plus upper, lower, digit and symbol classes. Every
     violation is reported, not only the first.

3. JWT (python-jose, HS256)
   - Access and refresh tokens are signed with different secrets; callers pass
     the secret explicitly.

4. FERNET ENCRYPTION
   - TOTP shared secrets are encrypted at rest with MFA_ENCRYPTION_KEY.

5. RANDOM CODES
   - Numeric OTPs, alphanumeric backup codes and opaque session handles, all
     from the `secrets` CSPRNG.
"""

import re
import secrets
import string
from datetime import datetime
from typing import Any

import anyio
from cryptography.fernet import Fernet
from jose import jwt
from passlib.context import CryptContext

from authcore.config import settings


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2id)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__time_cost=settings.PASSWORD_HASH_TIME_COST,
    argon2__memory_cost=settings.PASSWORD_HASH_MEMORY_COST,
)

_hash_limiter: anyio.CapacityLimiter | None = None


def _get_hash_limiter() -> anyio.CapacityLimiter:
    # Created lazily: the limiter must belong to the running event loop
    global _hash_limiter
    if _hash_limiter is None:
        _hash_limiter = anyio.CapacityLimiter(settings.PASSWORD_HASH_CONCURRENCY)
    return _hash_limiter


def hash_password(plain_password: str) -> str:
    """Hash a plaintext password using Argon2id."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plaintext password against a stored hash.

    The comparison inside the hash library is constant-time. A malformed
    stored hash counts as a mismatch rather than an error.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


async def hash_password_async(plain_password: str) -> str:
    return await anyio.to_thread.run_sync(
        hash_password, plain_password, limiter=_get_hash_limiter()
    )


async def verify_password_async(plain_password: str, hashed_password: str | None) -> bool:
    """
    Verify a password off the event loop.

    When there is no stored hash (unknown account, passwordless account) a
    dummy verification still runs, so response timing does not reveal whether
    the account exists.
    """
    if hashed_password is None:
        await anyio.to_thread.run_sync(pwd_context.dummy_verify, limiter=_get_hash_limiter())
        return False
    return await anyio.to_thread.run_sync(
        verify_password, plain_password, hashed_password, limiter=_get_hash_limiter()
    )


# ---------------------------------------------------------------------------
# 2. Password Policy
# ---------------------------------------------------------------------------

_SYMBOL_RE = re.compile(r"[^A-Za-z0-9\s]")


def password_policy_violations(password: str, min_length: int | None = None) -> list[str]:
    """
    Check a password against the strength policy.

    Args:
        password: Candidate password.
        min_length: Override for the minimum length (public registration may
                    use a relaxed value). Defaults to PASSWORD_MIN_LENGTH.

    Returns:
        A list of human-readable violations; empty when the password passes.
    """
    required_length = min_length or settings.PASSWORD_MIN_LENGTH
    errors: list[str] = []

    if len(password) < required_length:
        errors.append(f"Password must be at least {required_length} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SYMBOL_RE.search(password):
        errors.append("Password must contain at least one special character")

    return errors


# ---------------------------------------------------------------------------
# 3. JWT
# ---------------------------------------------------------------------------


def encode_jwt(claims: dict[str, Any], secret: str, expires_at: datetime) -> str:
    """
    Sign a claims dictionary.

    Args:
        claims: Payload; must include "sub". "exp" is added here.
        secret: Signing secret (access and refresh tokens use different ones).
        expires_at: Absolute expiry.
    """
    to_encode = claims.copy()
    to_encode["exp"] = expires_at
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def decode_jwt(token: str, secret: str) -> dict[str, Any]:
    """
    Decode and verify a JWT.

    Raises:
        jose.JWTError: If the token is expired, tampered with, or malformed.
    """
    return jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])


# ---------------------------------------------------------------------------
# 4. Fernet Encryption (TOTP secrets at rest)
# ---------------------------------------------------------------------------

_fernet = Fernet(settings.MFA_ENCRYPTION_KEY.encode())


def encrypt_value(plaintext: str) -> bytes:
    return _fernet.encrypt(plaintext.encode())


def decrypt_value(ciphertext: bytes) -> str:
    """
    Raises:
        cryptography.fernet.InvalidToken: If the data is corrupted or the key changed.
    """
    return _fernet.decrypt(ciphertext).decode()


# ---------------------------------------------------------------------------
# 5. Random Codes
# ---------------------------------------------------------------------------

_BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_numeric_code(length: int = 6) -> str:
    """Uniform numeric code without a leading zero, e.g. 6 digits in 100000..999999."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_backup_code(length: int = 8) -> str:
    return "".join(secrets.choice(_BACKUP_CODE_ALPHABET) for _ in range(length))


def generate_session_token() -> str:
    return secrets.token_urlsafe(48)
