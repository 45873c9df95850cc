"""Base API exception carrying a stable error code."""

from fastapi import HTTPException, status


class ApiException(HTTPException):
    """HTTP error rendered as ``{"success": false, "error": code, "message": detail}``.

    ``error_code`` is the stable, machine-readable part; ``detail`` is the
    human message. ``retry_after`` (seconds) is echoed in the body and in a
    ``Retry-After`` header.
    """

    def __init__(
        self,
        detail: str,
        error_code: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: dict[str, str] | None = None,
        retry_after: int | None = None,
    ):
        headers = dict(headers or {})
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        super().__init__(status_code=status_code, detail=detail, headers=headers or None)
        self.error_code = error_code
        self.retry_after = retry_after


class InternalErrorException(ApiException):
    """Raised for transient store failures; safe for the client to retry."""

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(
            detail=detail, error_code="INTERNAL_ERROR", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
