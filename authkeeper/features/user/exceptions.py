"""Account-related exceptions."""

from fastapi import status

from authkeeper.shared.errors.exceptions import ApiException


class UserNotFound(ApiException):
    """Raised when user is not found."""

    def __init__(self):
        super().__init__(detail="User not found", error_code="USER_NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class UserAlreadyExists(ApiException):
    """Raised when username, email or phone is already registered.

    The message does not say which field collided.
    """

    def __init__(self):
        super().__init__(
            detail="Username, email or phone number already registered",
            error_code="USER_EXISTS",
            status_code=status.HTTP_409_CONFLICT,
        )


class RegistrationFailed(ApiException):
    def __init__(self):
        super().__init__(
            detail="Registration failed",
            error_code="REGISTRATION_FAILED",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
