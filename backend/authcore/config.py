"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the second-factor sign-in core, loaded from environment variables."""

    # Application
    APP_NAME: str = "Authcore"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Security
    SECRET_KEY: str
    # Operator secret for the TOTP seed cipher. Falls back to SECRET_KEY[:32].
    TOTP_ENCRYPTION_KEY: Optional[str] = None
    # "pad" zero-pads/truncates the operator secret to 32 bytes; "hkdf" derives it
    TOTP_KEY_DERIVATION: Literal["pad", "hkdf"] = "pad"

    # TOTP
    TOTP_ISSUER: str = "Authcore"
    TOTP_VALID_WINDOW: int = 1  # +-1 step of 30 seconds
    BACKUP_CODE_COUNT: int = 8

    # WebAuthn ceremony
    CHALLENGE_TTL_SECONDS: int = 300
    WEBAUTHN_TIMEOUT_MS: int = 60000
    # Reject assertions whose signature counter does not advance (cloned authenticators)
    WEBAUTHN_ENFORCE_SIGN_COUNT: bool = True

    # Passwordless session hand-off
    SITE_URL: str = "http://localhost:5173"  # Used when the caller supplies no origin
    POST_AUTH_PATH: str = "/app"
    APP_BASE_URL: str = "http://localhost:5173"  # Used to build magic-link action URLs
    MAGIC_LINK_EXPIRE_MINUTES: int = 60

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is not using insecure defaults in production."""
        insecure_defaults = [
            "dev-secret-key-change-in-production",
            "your-secret-key-here",
            "change-me",
            "secret",
        ]

        # Read ENVIRONMENT directly (before Settings is fully initialized)
        import os

        environment = os.getenv("ENVIRONMENT", "development")

        if environment == "production" and (v in insecure_defaults or len(v) < 32):
            raise ValueError(
                "Insecure SECRET_KEY detected in production! "
                "Generate a secure key with: openssl rand -hex 32"
            )

        return v

    @field_validator("BACKUP_CODE_COUNT")
    @classmethod
    def validate_backup_code_count(cls, v: int) -> int:
        """A batch must contain at least one code."""
        if v < 1:
            raise ValueError("BACKUP_CODE_COUNT must be at least 1")
        return v

    @field_validator("SITE_URL")
    @classmethod
    def validate_site_url(cls, v: str) -> str:
        """The relying-party id is taken from this host, so it must have one."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError("SITE_URL must be an absolute http(s) URL with a host")
        return v

    @property
    def totp_encryption_secret(self) -> str:
        """Operator secret used to key the TOTP seed cipher."""
        return self.TOTP_ENCRYPTION_KEY or self.SECRET_KEY[:32]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
