"""Authentication exceptions."""

from fastapi import status

from authkeeper.shared.errors.exceptions import ApiException

# Internal failures. These never reach the client directly; the service layer
# and request gate translate them into the HTTP exceptions further down.


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its ``exp``."""


class TokenMalformedError(TokenError):
    """Bad structure, bad signature, wrong issuer/audience or wrong token type."""


class CredentialHashError(Exception):
    """The password hasher failed internally."""


class InvalidRefreshTokenError(Exception):
    """Refresh grant revoked, expired, unknown, or its session is no longer live."""


class InvalidResetTokenError(Exception):
    """Password reset token unknown, used, or expired."""


# HTTP-facing exceptions


class AuthenticationException(ApiException):
    """Base authentication exception."""

    def __init__(self, detail: str = "Authentication failed", error_code: str = "UNAUTHORIZED", **kwargs):
        super().__init__(
            detail=detail,
            error_code=error_code,
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
            **kwargs,
        )


class AccessDeniedException(AuthenticationException):
    """Raised when no bearer token was supplied."""

    def __init__(self):
        super().__init__(detail="Access token required", error_code="ACCESS_DENIED")


class TokenExpiredException(AuthenticationException):
    """Raised when the access token has expired."""

    def __init__(self):
        super().__init__(detail="Access token has expired", error_code="TOKEN_EXPIRED")


class InvalidTokenException(AuthenticationException):
    """Raised when the access token is malformed or tampered with."""

    def __init__(self, detail: str = "Invalid access token"):
        super().__init__(detail=detail, error_code="INVALID_TOKEN")


class SessionExpiredException(AuthenticationException):
    """Raised when the token is valid but its session was revoked or expired."""

    def __init__(self):
        super().__init__(detail="Session has expired", error_code="SESSION_EXPIRED")


class InvalidCredentialsException(AuthenticationException):
    """Raised for unknown identifiers and wrong passwords alike."""

    def __init__(self):
        super().__init__(detail="Invalid credentials", error_code="INVALID_CREDENTIALS")


class InvalidCurrentPasswordException(AuthenticationException):
    def __init__(self):
        super().__init__(detail="Current password is incorrect", error_code="INVALID_CURRENT_PASSWORD")


class TokenRefreshFailedException(AuthenticationException):
    def __init__(self):
        super().__init__(detail="Failed to refresh token", error_code="TOKEN_REFRESH_FAILED")


class AccountLockedException(ApiException):
    """Raised when the account-level lockout is active."""

    def __init__(self, retry_after: int | None = None):
        super().__init__(
            detail="Account is temporarily locked due to too many failed login attempts",
            error_code="ACCOUNT_LOCKED",
            status_code=status.HTTP_423_LOCKED,
            retry_after=retry_after,
        )


class TooManyAttemptsException(ApiException):
    """Raised when an identifier has too many recent failed logins."""

    def __init__(self, retry_after: int):
        super().__init__(
            detail="Too many failed login attempts. Please try again later.",
            error_code="TOO_MANY_ATTEMPTS",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            retry_after=retry_after,
        )


class ForbiddenException(ApiException):
    """Raised when the caller lacks ownership or permission."""

    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(detail=detail, error_code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class MissingOwnerIdException(ApiException):
    def __init__(self, field: str):
        super().__init__(detail=f"'{field}' is required", error_code="MISSING_USER_ID")


class UserInactiveException(ApiException):
    """Raised when user account is inactive."""

    def __init__(self):
        super().__init__(
            detail="User account is inactive", error_code="USER_INACTIVE", status_code=status.HTTP_403_FORBIDDEN
        )


class SessionNotFoundException(ApiException):
    def __init__(self):
        super().__init__(
            detail="Session not found", error_code="SESSION_NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND
        )


class InvalidResetTokenException(ApiException):
    def __init__(self):
        super().__init__(detail="Invalid or expired password reset token", error_code="INVALID_RESET_TOKEN")


class LogoutFailedException(ApiException):
    def __init__(self, error_code: str = "LOGOUT_FAILED"):
        super().__init__(
            detail="Logout failed", error_code=error_code, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
