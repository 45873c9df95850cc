"""Exception handlers rendering every failure as the error envelope."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from authkeeper.shared.responses.envelope import ErrorResponse

logger = logging.getLogger(__name__)

# Fallback codes for HTTP errors raised without one (e.g. router 404/405)
_STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    423: "LOCKED",
    429: "RATE_LIMIT_EXCEEDED",
}


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: list[dict] | None = None,
    retry_after: int | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a ``{"success": false, "error": ..., "message": ...}`` response."""
    body = ErrorResponse(error=error_code, message=message, details=details, retry_after=retry_after)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def _field_name(loc: tuple) -> str:
    return ".".join(str(part) for part in loc if part not in ("body", "query", "path", "header", "cookie"))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing handlers on ``app``."""

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [{"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "")} for err in exc.errors()]
        logger.info(f"Validation failed on {request.method} {request.url.path}: {len(details)} error(s)")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "VALIDATION_ERROR",
            "Invalid input data",
            details=details,
        )

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
        retry_after = exc.limit.limit.get_expiry()
        logger.warning(f"Rate limit exceeded on {request.method} {request.url.path}: {exc.detail}")
        return error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "RATE_LIMIT_EXCEEDED",
            "Too many requests, please try again later.",
            retry_after=retry_after,
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        error_code = getattr(exc, "error_code", None) or _STATUS_TO_CODE.get(exc.status_code, "INTERNAL_ERROR")
        if exc.status_code >= 500:
            logger.error(f"{error_code} on {request.method} {request.url.path}: {exc.detail}")
        elif exc.status_code in (401, 403, 423, 429):
            logger.warning(f"{error_code} on {request.method} {request.url.path}")

        return error_response(
            exc.status_code,
            error_code,
            str(exc.detail),
            retry_after=getattr(exc, "retry_after", None),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError):
        logger.error(f"Store error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Service temporarily unavailable, please retry",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Internal server error",
        )
