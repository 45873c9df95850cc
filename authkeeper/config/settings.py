"""Application settings and configuration."""

import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application (hardcoded constants)
    app_name: str = "AuthKeeper"
    app_version: str = "0.1.0"

    # Environment-specific settings
    debug: bool = False
    environment: str  # development, staging, production

    # Database
    database_url: str
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    database_echo: bool = False
    # Create missing tables at startup (no migration tool in this project)
    database_create_tables: bool = True

    # API
    api_prefix: str = "/api"
    cors_allow_origins: str = "http://localhost:3000"

    # Tokens
    jwt_secret_key: str
    jwt_refresh_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "authkeeper-api"
    jwt_audience: str = "authkeeper-client"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    refresh_token_rotation: bool = False

    # Sessions
    session_expire_hours: int = 24
    cleanup_interval_seconds: int = 3600
    login_attempt_retention_hours: int = 24
    password_reset_expire_minutes: int = 60
    # Echo reset tokens in the forgot-password response (never in production)
    password_reset_expose_token: bool = False

    # Refresh token cookie
    refresh_cookie_name: str = "refresh_token"
    cookie_secure: bool = True

    # Password hashing (Argon2id)
    argon2_memory_cost: int = 65536  # KiB
    argon2_time_cost: int = 3
    argon2_parallelism: int = 1

    # Brute-force mitigation
    max_failed_login_attempts: int = 5
    account_lock_minutes: int = 30
    identifier_failure_window_minutes: int = 60

    # Rate limiting (limits library notation)
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    rate_limit_auth: str = "5/15minutes"
    rate_limit_registration: str = "3/hour"
    rate_limit_password_reset: str = "3/hour"
    rate_limit_api: str = "1000/15minutes"

    # Field encryption (base64-encoded 32-byte key)
    encryption_key: str

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_envs = {"development", "staging", "production", "testing"}
        env = str(v).lower()
        if env not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}, got {env}")
        return env

    @field_validator("jwt_secret_key", "jwt_refresh_secret_key")
    @classmethod
    def validate_secret_length(cls, v: str) -> str:
        """Reject signing secrets too short for HMAC-SHA256."""
        if len(v) < 32:
            raise ValueError("JWT secrets must be at least 32 characters long")
        return v

    @model_validator(mode="after")
    def validate_distinct_secrets(self) -> "Settings":
        if self.jwt_secret_key == self.jwt_refresh_secret_key:
            raise ValueError("JWT_SECRET_KEY and JWT_REFRESH_SECRET_KEY must differ")
        return self

    @property
    def access_token_expire_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_expire_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def cors_origins(self) -> list[str]:
        """Parse the comma-separated CORS origin list."""
        return [o.strip().rstrip("/") for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()  # type: ignore[call-arg]
