"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Secrets (token signing keys, the MFA encryption key) have no
defaults, so the service refuses to start until they are provided.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from authcore.config import settings
    print(settings.ACCESS_TOKEN_EXPIRE_MINUTES)
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the identity service.

    Required fields (no defaults) MUST be set in .env or environment:
      - ACCESS_TOKEN_SECRET: Signs short-lived access tokens
      - REFRESH_TOKEN_SECRET: Signs refresh tokens (must differ from the above)
      - MFA_ENCRYPTION_KEY: Fernet key for encrypting TOTP secrets at rest
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Identity Core"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/identity.db"

    # --- Tokens ---
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # --- Passwords ---
    PASSWORD_MIN_LENGTH: int = 12
    # Public registration may be relaxed to 8; every other path uses PASSWORD_MIN_LENGTH
    REGISTRATION_PASSWORD_MIN_LENGTH: int = 12
    # Argon2id cost parameters (time_cost=3 / 64 MiB is roughly bcrypt cost 12)
    PASSWORD_HASH_TIME_COST: int = 3
    PASSWORD_HASH_MEMORY_COST: int = 65536
    # Number of hashes allowed to run concurrently in the worker pool
    PASSWORD_HASH_CONCURRENCY: int = 4

    # --- Registration ---
    # True: register returns only the account id and login waits for email
    # verification. False: register returns a token pair immediately.
    REQUIRE_EMAIL_VERIFICATION: bool = True

    # --- Lockout ---
    MAX_FAILED_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_DURATION_MINUTES: int = 30

    # --- One-time codes ---
    OTP_EXPIRE_MINUTES: int = 10

    # --- MFA ---
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    MFA_ENCRYPTION_KEY: str
    MFA_ISSUER: str = "Identity Core"
    MFA_DIGITS: int = 6
    MFA_PERIOD_SECONDS: int = 30
    MFA_VALID_WINDOW: int = 2
    MFA_ENROLLMENT_TTL_MINUTES: int = 10
    BACKUP_CODE_COUNT: int = 10
    BACKUP_CODE_LENGTH: int = 8

    # --- Notifications ---
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str | None = None
    SMS_GATEWAY_URL: str | None = None
    SMS_GATEWAY_TOKEN: str | None = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @model_validator(mode="after")
    def _check_invariants(self) -> "Settings":
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")
        if not 5 <= self.OTP_EXPIRE_MINUTES <= 10:
            raise ValueError("OTP_EXPIRE_MINUTES must be between 5 and 10")
        if self.REGISTRATION_PASSWORD_MIN_LENGTH < 8:
            raise ValueError("REGISTRATION_PASSWORD_MIN_LENGTH cannot be below 8")
        return self


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
