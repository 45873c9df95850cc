"""Authentication schemas (DTOs)."""

from datetime import datetime

from pydantic import Field, field_validator

from authkeeper.shared.responses.envelope import ApiModel
from authkeeper.shared.validators.password import MAX_PASSWORD_LENGTH, validate_password_strength


# Request schemas
class LoginRequest(ApiModel):
    """Login with a single identifier.

    The identifier may be a username, an email address or a phone number;
    the service resolves which.
    """

    identifier: str = Field(..., min_length=1, max_length=100, description="Username, email, or phone number")
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("identifier")
    @classmethod
    def strip_identifier(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username, email, or phone number is required")
        return value


class RefreshTokenRequest(ApiModel):
    """Refresh request; the token may come from the body or the refresh cookie."""

    refresh_token: str | None = None


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        """Validate password strength using shared validator."""
        return validate_password_strength(value)


class ForgotPasswordRequest(ApiModel):
    identifier: str = Field(..., min_length=1, max_length=100)


class ResetPasswordRequest(ApiModel):
    token: str = Field(..., min_length=1, max_length=256)
    new_password: str = Field(..., min_length=8, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        """Validate password strength using shared validator."""
        return validate_password_strength(value)


# Response schemas
class AuthTokensData(ApiModel):
    """Payload returned by register and login."""

    user_id: int
    username: str
    email: str
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds


class RefreshData(ApiModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    # Present only when refresh-token rotation is enabled
    refresh_token: str | None = None


class SessionData(ApiModel):
    session_id: str
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    is_current: bool = False


class RevokedSessionsData(ApiModel):
    revoked_sessions: int
