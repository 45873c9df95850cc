"""Authentication router (registration, login, token and session management)."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.config.settings import settings
from authkeeper.database.dependencies import get_db_session
from authkeeper.features.user.models import User
from authkeeper.features.user.schemas import UserRegisterRequest, UserResponse
from authkeeper.shared.rate_limit import AUTH_LIMIT, PASSWORD_RESET_LIMIT, REGISTRATION_LIMIT, limiter
from authkeeper.shared.responses.envelope import MessageResponse, SuccessResponse

from .dependencies import AuthContext, get_current_user, require_auth
from .schemas import (
    AuthTokensData,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshData,
    RefreshTokenRequest,
    ResetPasswordRequest,
    RevokedSessionsData,
    SessionData,
)
from .service import AuthService
from .session_store import IssuedSession, session_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    return ip_address, user_agent


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        max_age=settings.refresh_token_expire_seconds,
        path=f"{settings.api_prefix}/auth",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=f"{settings.api_prefix}/auth",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )


def _tokens_data(user: User, issued: IssuedSession) -> AuthTokensData:
    return AuthTokensData(
        user_id=user.id,
        username=user.username,
        email=user.email,
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
    )


@router.post("/register", response_model=SuccessResponse[AuthTokensData], status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTRATION_LIMIT)
async def register(
    data: UserRegisterRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    """Register a new account and log it in.

    - **username**: 3-30 letters, digits or underscores
    - **email**: Valid email address
    - **phonePrefix** / **phoneNumber**: Country code and 7-15 digits
    - **password**: 8-128 chars with upper, lower, digit and special character
    - **fullName** / **fullSurname**: Letters, spaces, hyphens, apostrophes
    """
    ip_address, user_agent = _client_info(request)
    user, issued = await AuthService.register(session, data, ip_address, user_agent)
    await session.commit()

    _set_refresh_cookie(response, issued.refresh_token)
    return SuccessResponse(message="User registered successfully", data=_tokens_data(user, issued))


@router.post("/login", response_model=SuccessResponse[AuthTokensData])
@limiter.limit(AUTH_LIMIT)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    """Login with username, email or phone number.

    Returns an access token in the body and the refresh token both in the
    body and as an HttpOnly cookie.
    """
    ip_address, user_agent = _client_info(request)
    user, issued = await AuthService.login(session, data.identifier, data.password, ip_address, user_agent)
    await session.commit()

    _set_refresh_cookie(response, issued.refresh_token)
    return SuccessResponse(message="Login successful", data=_tokens_data(user, issued))


@router.post("/refresh", response_model=SuccessResponse[RefreshData])
async def refresh_token(
    request: Request,
    response: Response,
    data: RefreshTokenRequest | None = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Exchange a refresh token for a new access token.

    The refresh token is read from the body (``refreshToken``) or, failing
    that, from the refresh cookie.
    """
    token = (data.refresh_token if data else None) or request.cookies.get(settings.refresh_cookie_name)
    ip_address, user_agent = _client_info(request)

    tokens = await AuthService.refresh(session, token, ip_address, user_agent)
    await session.commit()

    if tokens.refresh_token:
        _set_refresh_cookie(response, tokens.refresh_token)

    return SuccessResponse(
        message="Token refreshed successfully",
        data=RefreshData(
            access_token=tokens.access_token,
            expires_in=tokens.expires_in,
            refresh_token=tokens.refresh_token,
        ),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    auth: AuthContext = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke the current session and its refresh token."""
    await AuthService.logout(session, auth.session_id)
    await session.commit()

    _clear_refresh_cookie(response)
    logger.info(f"User logged out: {auth.username}")
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=SuccessResponse[RevokedSessionsData])
async def logout_all(
    response: Response,
    auth: AuthContext = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke every session of the account, this one included."""
    revoked = await AuthService.logout_all(session, auth.user_id)
    await session.commit()

    _clear_refresh_cookie(response)
    return SuccessResponse(
        message="Logged out from all devices",
        data=RevokedSessionsData(revoked_sessions=revoked),
    )


@router.post("/change-password", response_model=SuccessResponse[RevokedSessionsData])
@limiter.limit(AUTH_LIMIT)
async def change_password(
    data: ChangePasswordRequest,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Change the password; every other session is signed out."""
    revoked = await AuthService.change_password(
        session, current_user, data.current_password, data.new_password, auth.session_id
    )
    await session.commit()
    return SuccessResponse(
        message="Password changed successfully",
        data=RevokedSessionsData(revoked_sessions=revoked),
    )


@router.get("/me", response_model=SuccessResponse[UserResponse])
async def me(current_user: User = Depends(get_current_user)):
    """Get the authenticated account's profile."""
    return SuccessResponse(data=UserResponse.model_validate(current_user))


@router.get("/sessions", response_model=SuccessResponse[list[SessionData]])
async def list_sessions(
    auth: AuthContext = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """List the account's live sessions, most recently active first."""
    sessions = await session_store.list_active_sessions(session, auth.user_id)
    return SuccessResponse(
        data=[
            SessionData(
                session_id=s.id,
                created_at=s.created_at,
                expires_at=s.expires_at,
                last_activity_at=s.last_activity_at,
                ip_address=s.ip_address,
                user_agent=s.user_agent,
                is_current=s.id == auth.session_id,
            )
            for s in sessions
        ]
    )


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: str,
    auth: AuthContext = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke one of the caller's own sessions (sign out another device)."""
    await AuthService.revoke_user_session(session, auth.user_id, session_id)
    await session.commit()
    return MessageResponse(message="Session revoked")


@router.post("/forgot-password", response_model=SuccessResponse[dict])
@limiter.limit(PASSWORD_RESET_LIMIT)
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
):
    """Start a password reset.

    Always answers the same way so callers cannot probe which identifiers
    have accounts.
    """
    token = await AuthService.request_password_reset(session, data.identifier)
    await session.commit()

    payload = None
    if token and settings.password_reset_expose_token and settings.environment != "production":
        payload = {"resetToken": token}
    return SuccessResponse(
        message="If an account matches, password reset instructions have been sent",
        data=payload,
    )


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(PASSWORD_RESET_LIMIT)
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_db_session),
):
    """Complete a password reset with the single-use token."""
    await AuthService.reset_password(session, data.token, data.new_password)
    await session.commit()
    return MessageResponse(message="Password has been reset, please log in again")
