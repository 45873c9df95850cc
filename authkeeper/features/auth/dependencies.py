"""Authentication dependencies for FastAPI."""

import json
from dataclasses import dataclass, field

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.database.dependencies import get_db_session
from authkeeper.features.user.models import ADMIN_PERMISSION, User
from authkeeper.features.user.service import UserService
from authkeeper.shared.errors.exceptions import ApiException

from .exceptions import (
    AccessDeniedException,
    ForbiddenException,
    InvalidTokenException,
    MissingOwnerIdException,
    SessionExpiredException,
    TokenError,
    TokenExpiredError,
    TokenExpiredException,
    UserInactiveException,
)
from .session_store import session_store
from .tokens import token_codec

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to an authenticated request."""

    user_id: int
    username: str
    session_id: str
    permissions: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return ADMIN_PERMISSION in self.permissions

    def has_permission(self, *permissions: str) -> bool:
        return self.is_admin or any(p in self.permissions for p in permissions)


async def _authenticate(credentials: HTTPAuthorizationCredentials | None, session: AsyncSession) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise AccessDeniedException()

    try:
        payload = token_codec.verify_access_token(credentials.credentials)
    except TokenExpiredError as err:
        raise TokenExpiredException() from err
    except TokenError as err:
        raise InvalidTokenException() from err

    try:
        user_id = int(payload["sub"])
        session_id = str(payload["sid"])
    except (KeyError, TypeError, ValueError) as err:
        raise InvalidTokenException(detail="Invalid token payload") from err

    # Revoked or expired sessions invalidate their outstanding access tokens
    if not await session_store.is_session_live(session, session_id, user_id):
        raise SessionExpiredException()

    await session_store.touch(session, session_id)

    return AuthContext(
        user_id=user_id,
        username=str(payload.get("username", "")),
        session_id=session_id,
        permissions=list(payload.get("permissions") or []),
    )


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    """Authenticate the bearer token and its session.

    Raises:
        AccessDeniedException: No bearer token
        TokenExpiredException: Token past its expiry
        InvalidTokenException: Token malformed or tampered with
        SessionExpiredException: Session revoked or expired

    """
    auth = await _authenticate(credentials, session)
    request.state.auth = auth
    return auth


async def optional_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext | None:
    """Like ``require_auth`` but yields None instead of failing.

    Useful for endpoints that work with or without authentication.
    """
    if credentials is None:
        return None
    try:
        auth = await _authenticate(credentials, session)
    except ApiException:
        return None
    request.state.auth = auth
    return auth


async def _read_json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


def require_ownership(field_name: str = "user_id"):
    """Dependency factory restricting a route to the owner of a resource.

    The owner id is looked up in the path parameters, then the query string,
    then the JSON body (snake_case or camelCase key). Callers holding the
    ``admin`` permission bypass the check.

    Usage:
        Depends(require_ownership("user_id"))
    """

    async def ownership_checker(request: Request, auth: AuthContext = Depends(require_auth)) -> AuthContext:
        owner_id = request.path_params.get(field_name)
        if owner_id is None:
            owner_id = request.query_params.get(field_name)
        if owner_id is None:
            body = await _read_json_body(request)
            owner_id = body.get(field_name, body.get(to_camel(field_name)))

        if owner_id is None or owner_id == "":
            raise MissingOwnerIdException(field_name)

        if str(owner_id) != str(auth.user_id) and not auth.is_admin:
            raise ForbiddenException(detail="Access denied: resource belongs to another user")

        return auth

    return ownership_checker


def require_permission(*required_permissions: str):
    """Dependency factory to require any one of the given permissions.

    Usage:
        Depends(require_permission("users:write"))
    """

    async def permission_checker(auth: AuthContext = Depends(require_auth)) -> AuthContext:
        # Admins have all permissions
        if not auth.has_permission(*required_permissions):
            raise ForbiddenException()
        return auth

    return permission_checker


async def get_current_user(
    auth: AuthContext = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    """Load the account behind the authenticated request.

    Raises:
        InvalidTokenException: If the account no longer exists
        UserInactiveException: If the account has been deactivated

    """
    user = await UserService.get_user(session, auth.user_id)
    if user is None:
        raise InvalidTokenException(detail="User not found")
    if not user.is_active:
        raise UserInactiveException()
    return user
