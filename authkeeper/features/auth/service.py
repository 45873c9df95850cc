"""Authentication service layer."""

import logging
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.config.settings import settings
from authkeeper.database.base import utcnow
from authkeeper.features.user.exceptions import RegistrationFailed
from authkeeper.features.user.models import User
from authkeeper.features.user.schemas import UserRegisterRequest
from authkeeper.features.user.service import UserService
from authkeeper.shared.errors.exceptions import InternalErrorException

from .exceptions import (
    AccountLockedException,
    CredentialHashError,
    InvalidCredentialsException,
    InvalidCurrentPasswordException,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    InvalidResetTokenException,
    LogoutFailedException,
    SessionNotFoundException,
    TokenRefreshFailedException,
    TooManyAttemptsException,
)
from .guard import LoginAttemptGuard
from .hashing import credential_hasher
from .models import UserSession
from .session_store import IssuedSession, RefreshedTokens, session_store

logger = logging.getLogger(__name__)


class AuthService:
    """Orchestrates registration, login, refresh, logout and password changes.

    Methods run inside the caller's ``AsyncSession``. The router commits
    before tokens are returned, so a token never reaches a client for a
    session that was not persisted.
    """

    @staticmethod
    async def register(
        session: AsyncSession,
        data: UserRegisterRequest,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[User, IssuedSession]:
        """Create an account and log it in.

        Raises:
            UserAlreadyExists: If username, email or phone is taken
            RegistrationFailed: If hashing or persistence fails

        """
        try:
            hashed_password = credential_hasher.hash(data.password)
        except CredentialHashError as err:
            raise RegistrationFailed() from err

        try:
            user = await UserService.register_user(session, data, hashed_password)
            issued = await session_store.create_session(
                session, user.id, user.username, ip_address, user_agent, list(user.permissions or [])
            )
        except SQLAlchemyError as err:
            logger.exception(f"Registration failed for {data.username}")
            raise RegistrationFailed() from err

        return user, issued

    @staticmethod
    async def login(
        session: AsyncSession,
        identifier: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[User, IssuedSession]:
        """Authenticate by username, email or phone and open a new session.

        The account-level lockout decides for identifiers that resolve to an
        account. The per-identifier guard only gates identifiers that match
        no account.

        The request session is committed before every guard call, so a login
        holds at most one pooled connection at a time.

        Raises:
            InvalidCredentialsException: Unknown identifier or wrong password
            AccountLockedException: Account lock is active
            TooManyAttemptsException: Unknown identifier failed too often

        """
        user = await UserService.get_by_identifier(session, identifier)
        # The guard uses its own session; give the request connection back first
        await session.commit()

        if user is None:
            if await LoginAttemptGuard.is_locked(identifier):
                logger.warning(f"Login throttled for unknown identifier from {ip_address}")
                raise TooManyAttemptsException(retry_after=LoginAttemptGuard.retry_after_seconds())
            credential_hasher.dummy_verify(password)
            await LoginAttemptGuard.record_attempt(identifier, ip_address, user_agent, success=False)
            logger.warning(f"Login failed for unknown identifier from {ip_address}")
            raise InvalidCredentialsException()

        now = utcnow()
        if user.account_locked:
            if user.is_locked(now):
                await LoginAttemptGuard.record_attempt(identifier, ip_address, user_agent, success=False)
                logger.warning(f"Login attempt for locked account: {user.username}")
                raise AccountLockedException(retry_after=user.lock_seconds_remaining(now))
            # Lock lapsed; the counter stays until a verified success
            user.account_locked = False
            user.lock_until = None

        valid, new_hash = credential_hasher.verify_and_update(user.hashed_password, password)

        if not valid:
            await AuthService._register_failed_login(session, user)
            await LoginAttemptGuard.record_attempt(identifier, ip_address, user_agent, success=False)
            raise InvalidCredentialsException()

        user.failed_login_attempts = 0
        user.account_locked = False
        user.lock_until = None
        user.last_login_at = now
        if new_hash is not None:
            user.hashed_password = new_hash
            logger.info(f"Password hash upgraded for user {user.username}")

        issued = await session_store.create_session(
            session, user.id, user.username, ip_address, user_agent, list(user.permissions or [])
        )
        await session.commit()
        await LoginAttemptGuard.record_attempt(identifier, ip_address, user_agent, success=True)

        logger.info(f"User logged in: {user.username}")
        return user, issued

    @staticmethod
    async def _register_failed_login(session: AsyncSession, user: User) -> None:
        """Atomically bump the failure counter and lock at the threshold.

        Committed here: the request fails with 401 afterwards and the
        request-scoped session would otherwise roll the bookkeeping back.
        """
        stmt = (
            update(User)
            .where(User.id == user.id)
            .values(failed_login_attempts=User.failed_login_attempts + 1)
            .returning(User.failed_login_attempts)
        )
        attempts = (await session.execute(stmt)).scalar_one()

        if attempts >= settings.max_failed_login_attempts:
            lock_until = utcnow() + timedelta(minutes=settings.account_lock_minutes)
            await session.execute(
                update(User).where(User.id == user.id).values(account_locked=True, lock_until=lock_until)
            )
            logger.warning(f"Account locked after {attempts} failed attempts: {user.username}")
        else:
            logger.warning(f"Failed login for {user.username} ({attempts} consecutive)")

        await session.commit()

    @staticmethod
    async def refresh(
        session: AsyncSession,
        refresh_token: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshedTokens:
        """Exchange a refresh token for a new access token.

        Raises:
            TokenRefreshFailedException: Missing, invalid, revoked or expired token,
                or the session behind it is no longer live

        """
        if not refresh_token:
            raise TokenRefreshFailedException()

        try:
            return await session_store.refresh_access_token(session, refresh_token, ip_address, user_agent)
        except InvalidRefreshTokenError as err:
            logger.warning(f"Refresh rejected from {ip_address}: {err}")
            raise TokenRefreshFailedException() from err

    @staticmethod
    async def logout(session: AsyncSession, session_id: str) -> None:
        """Revoke the caller's session. Idempotent."""
        try:
            await session_store.revoke_session(session, session_id)
        except SQLAlchemyError as err:
            logger.exception("Logout failed")
            raise LogoutFailedException() from err

    @staticmethod
    async def logout_all(session: AsyncSession, user_id: int) -> int:
        """Revoke every session of the account, the current one included."""
        try:
            return await session_store.revoke_all_sessions(session, user_id)
        except SQLAlchemyError as err:
            logger.exception(f"Logout-all failed for user {user_id}")
            raise LogoutFailedException(error_code="LOGOUT_ALL_FAILED") from err

    @staticmethod
    async def change_password(
        session: AsyncSession,
        user: User,
        current_password: str,
        new_password: str,
        current_session_id: str,
    ) -> int:
        """Replace the password and sign out every other device.

        Returns:
            Number of other sessions revoked

        Raises:
            InvalidCurrentPasswordException: If ``current_password`` is wrong

        """
        if not credential_hasher.verify(user.hashed_password, current_password):
            logger.warning(f"Password change with wrong current password: {user.username}")
            raise InvalidCurrentPasswordException()

        try:
            user.hashed_password = credential_hasher.hash(new_password)
        except CredentialHashError as err:
            raise InternalErrorException("Failed to update password") from err

        user.password_changed_at = utcnow()
        revoked = await session_store.revoke_all_sessions(session, user.id, except_session_id=current_session_id)

        logger.info(f"Password changed for user {user.username}; {revoked} other session(s) revoked")
        return revoked

    @staticmethod
    async def request_password_reset(session: AsyncSession, identifier: str) -> str | None:
        """Issue a reset token for the account behind ``identifier``.

        Returns:
            The raw token, or None when no active account matches. The
            endpoint answers identically either way; handing the token to
            the account owner is the delivery channel's job.

        """
        user = await UserService.get_by_identifier(session, identifier)
        if user is None:
            logger.info("Password reset requested for unknown identifier")
            return None

        token = await session_store.create_password_reset_token(session, user.id)
        logger.info(f"Password reset token issued for user {user.id}")
        return token

    @staticmethod
    async def reset_password(session: AsyncSession, token: str, new_password: str) -> User:
        """Consume a reset token and set a new password.

        Clears any lockout and revokes every session of the account.

        Raises:
            InvalidResetTokenException: Unknown, used or expired token

        """
        try:
            user_id = await session_store.consume_password_reset_token(session, token)
        except InvalidResetTokenError as err:
            logger.warning("Password reset with invalid token")
            raise InvalidResetTokenException() from err

        user = await UserService.get_user(session, user_id)
        if user is None or not user.is_active:
            raise InvalidResetTokenException()

        try:
            user.hashed_password = credential_hasher.hash(new_password)
        except CredentialHashError as err:
            raise InternalErrorException("Failed to update password") from err

        user.password_changed_at = utcnow()
        user.failed_login_attempts = 0
        user.account_locked = False
        user.lock_until = None
        await session_store.revoke_all_sessions(session, user.id)

        logger.info(f"Password reset completed for user {user.username}")
        return user

    @staticmethod
    async def revoke_user_session(session: AsyncSession, user_id: int, session_id: str) -> UserSession:
        """Revoke one of the caller's own sessions.

        Raises:
            SessionNotFoundException: If the session is absent or belongs to someone else

        """
        user_session = await session_store.get_user_session(session, user_id, session_id)
        if user_session is None:
            raise SessionNotFoundException()

        await session_store.revoke_session(session, session_id)
        logger.info(f"Session revoked by owner {user_id}")
        return user_session
