"""Account schemas (DTOs)."""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from authkeeper.shared.responses.envelope import ApiModel
from authkeeper.shared.validators.identity import (
    validate_personal_name,
    validate_phone_number,
    validate_phone_prefix,
    validate_username,
)
from authkeeper.shared.validators.password import validate_password_strength


# Request schemas
class UserRegisterRequest(ApiModel):
    """Account registration request (camelCase on the wire)."""

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    phone_prefix: str = Field(..., max_length=5, description="Country code, e.g. +44")
    phone_number: str = Field(..., description="7-15 digits")
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=30)
    full_surname: str = Field(..., min_length=1, max_length=30)

    @field_validator("username")
    @classmethod
    def username_format(cls, value: str) -> str:
        return validate_username(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        """Emails are matched case-insensitively, so store them lowercased."""
        if len(value) > 50:
            raise ValueError("Email must not exceed 50 characters")
        return value.lower()

    @field_validator("phone_prefix")
    @classmethod
    def prefix_format(cls, value: str) -> str:
        return validate_phone_prefix(value)

    @field_validator("phone_number")
    @classmethod
    def number_format(cls, value: str) -> str:
        return validate_phone_number(value)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        """Validate password strength using shared validator."""
        return validate_password_strength(value)

    @field_validator("full_name", "full_surname")
    @classmethod
    def name_format(cls, value: str) -> str:
        return validate_personal_name(value)


class AssignPermissionsRequest(ApiModel):
    """Replace a user's permission list (admin only)."""

    permissions: list[str] = Field(..., min_length=1)

    @field_validator("permissions")
    @classmethod
    def dedupe(cls, value: list[str]) -> list[str]:
        cleaned = [p.strip() for p in value if p.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty permission is required")
        return list(dict.fromkeys(cleaned))


# Response schemas
class UserResponse(ApiModel):
    """Public account profile."""

    id: int
    username: str
    email: EmailStr
    phone_prefix: str
    phone_number: str
    full_name: str
    full_surname: str
    permissions: list[str]
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None
