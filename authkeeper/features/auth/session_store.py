"""Session and refresh-grant persistence."""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.config.settings import Settings, settings
from authkeeper.database.base import utcnow
from authkeeper.features.user.models import User

from .exceptions import InvalidRefreshTokenError, InvalidResetTokenError, TokenError
from .models import LoginAttempt, PasswordResetToken, RefreshToken, UserSession
from .tokens import TokenCodec, token_codec

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 hex digest; the only form in which bearer secrets are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_id() -> str:
    """256-bit random session identifier as 64 hex characters."""
    return secrets.token_hex(32)


@dataclass(frozen=True)
class IssuedSession:
    session_id: str
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class RefreshedTokens:
    access_token: str
    expires_in: int
    # Only set when refresh-token rotation is enabled
    refresh_token: str | None = None


@dataclass(frozen=True)
class CleanupResult:
    refresh_tokens: int
    sessions: int
    reset_tokens: int
    login_attempts: int


class SessionStore:
    """Persistent record of sessions and refresh grants.

    Every method works inside the caller's ``AsyncSession``; the caller owns
    the transaction and commits before tokens leave the process. TTLs and the
    rotation switch come from the settings the store was constructed with.
    """

    def __init__(self, config: Settings, codec: TokenCodec):
        self._codec = codec
        self._session_ttl = timedelta(hours=config.session_expire_hours)
        self._reset_token_ttl = timedelta(minutes=config.password_reset_expire_minutes)
        self._attempt_retention = timedelta(hours=config.login_attempt_retention_hours)
        self._rotate_refresh_tokens = config.refresh_token_rotation

    async def create_session(
        self,
        session: AsyncSession,
        user_id: int,
        username: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        permissions: list[str] | None = None,
    ) -> IssuedSession:
        """Persist a session plus its refresh grant and mint both tokens.

        Args:
            session: Database session (caller commits)
            user_id: Owning account id
            username: Username carried in the token claims
            ip_address: Requester's IP address (optional)
            user_agent: Requester's User-Agent header (optional)
            permissions: Permission list for the access token

        Returns:
            IssuedSession with both tokens and the advertised access TTL

        """
        session_id = generate_session_id()
        now = utcnow()

        access_token = self._codec.issue_access_token(user_id, username, session_id, permissions or [])
        refresh_token = self._codec.issue_refresh_token(user_id, username, session_id)

        session.add(
            UserSession(
                id=session_id,
                user_id=user_id,
                created_at=now,
                expires_at=now + self._session_ttl,
                last_activity_at=now,
                ip_address=ip_address,
                user_agent=user_agent,
                is_active=True,
            )
        )
        # Session row must exist before the grant that references it
        await session.flush()

        session.add(
            RefreshToken(
                user_id=user_id,
                session_id=session_id,
                token_hash=hash_token(refresh_token),
                expires_at=now + self._codec.refresh_ttl,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        await session.flush()

        logger.debug(f"Session created for user {user_id}")
        return IssuedSession(
            session_id=session_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._codec.access_expires_in,
        )

    async def refresh_access_token(
        self,
        session: AsyncSession,
        refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshedTokens:
        """Mint a new access token from a refresh token.

        The grant must be unrevoked and unexpired, and its session active and
        unexpired. Permissions and username are re-read from the account row.
        A successful refresh slides the session expiry forward, never past
        the grant's own expiry.

        Raises:
            InvalidRefreshTokenError: If any of the above checks fail

        """
        try:
            payload = self._codec.verify_refresh_token(refresh_token)
            user_id = int(payload["sub"])
            session_id = str(payload["sid"])
        except (TokenError, KeyError, ValueError) as err:
            raise InvalidRefreshTokenError("Invalid or expired refresh token") from err

        now = utcnow()
        stmt = (
            select(RefreshToken, UserSession, User)
            .join(UserSession, UserSession.id == RefreshToken.session_id)
            .join(User, User.id == RefreshToken.user_id)
            .where(
                RefreshToken.token_hash == hash_token(refresh_token),
                RefreshToken.session_id == session_id,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                UserSession.expires_at > now,
                User.is_active.is_(True),
            )
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            raise InvalidRefreshTokenError("Refresh grant not found, revoked, or session inactive")

        grant, user_session, user = row

        grant.last_used_at = now
        user_session.last_activity_at = now
        sliding_expiry = now + self._session_ttl
        user_session.expires_at = min(max(user_session.expires_at, sliding_expiry), grant.expires_at)

        permissions = list(user.permissions or [])
        access_token = self._codec.issue_access_token(user.id, user.username, session_id, permissions)

        new_refresh_token = None
        if self._rotate_refresh_tokens:
            grant.revoked = True
            grant.revoked_at = now
            new_refresh_token = self._codec.issue_refresh_token(user.id, user.username, session_id)
            session.add(
                RefreshToken(
                    user_id=user.id,
                    session_id=session_id,
                    token_hash=hash_token(new_refresh_token),
                    expires_at=now + self._codec.refresh_ttl,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )

        await session.flush()
        return RefreshedTokens(
            access_token=access_token,
            expires_in=self._codec.access_expires_in,
            refresh_token=new_refresh_token,
        )

    async def revoke_session(self, session: AsyncSession, session_id: str) -> None:
        """Deactivate one session and revoke every grant issued for it. Idempotent."""
        now = utcnow()
        await session.execute(
            update(UserSession)
            .where(UserSession.id == session_id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        await session.execute(
            update(RefreshToken)
            .where(RefreshToken.session_id == session_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=now)
        )

    async def revoke_all_sessions(
        self, session: AsyncSession, user_id: int, except_session_id: str | None = None
    ) -> int:
        """Deactivate every session of an account, optionally sparing one.

        Returns:
            Number of sessions that were active and are now revoked

        """
        now = utcnow()
        session_filter = [UserSession.user_id == user_id, UserSession.is_active.is_(True)]
        grant_filter = [RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False)]
        if except_session_id is not None:
            session_filter.append(UserSession.id != except_session_id)
            grant_filter.append(RefreshToken.session_id != except_session_id)

        result = await session.execute(
            update(UserSession)
            .where(*session_filter)
            .values(is_active=False)
        )
        await session.execute(
            update(RefreshToken)
            .where(*grant_filter)
            .values(revoked=True, revoked_at=now)
        )
        revoked = result.rowcount or 0
        logger.info(f"Revoked {revoked} session(s) for user {user_id}")
        return revoked

    async def is_session_live(self, session: AsyncSession, session_id: str, user_id: int | None = None) -> bool:
        """True if the session exists, is active and has not expired."""
        stmt = select(UserSession.id).where(
            UserSession.id == session_id,
            UserSession.is_active.is_(True),
            UserSession.expires_at > utcnow(),
        )
        if user_id is not None:
            stmt = stmt.where(UserSession.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def touch(self, session: AsyncSession, session_id: str) -> None:
        """Stamp the session's last activity time."""
        await session.execute(
            update(UserSession)
            .where(UserSession.id == session_id)
            .values(last_activity_at=utcnow())
        )

    async def list_active_sessions(self, session: AsyncSession, user_id: int) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                UserSession.expires_at > utcnow(),
            )
            .order_by(UserSession.last_activity_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_user_session(self, session: AsyncSession, user_id: int, session_id: str) -> UserSession | None:
        """Fetch a session only if it belongs to ``user_id``."""
        stmt = select(UserSession).where(UserSession.id == session_id, UserSession.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_password_reset_token(self, session: AsyncSession, user_id: int) -> str:
        """Issue a single-use reset token, invalidating any unused earlier ones.

        Returns:
            The raw token; only its hash is persisted

        """
        now = utcnow()
        await session.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.user_id == user_id, PasswordResetToken.used.is_(False))
            .values(used=True)
        )

        token = secrets.token_urlsafe(32)
        session.add(
            PasswordResetToken(
                user_id=user_id,
                token_hash=hash_token(token),
                expires_at=now + self._reset_token_ttl,
            )
        )
        await session.flush()
        return token

    async def consume_password_reset_token(self, session: AsyncSession, token: str) -> int:
        """Mark a reset token used and return its account id.

        The check and the mark happen in one UPDATE, so a token can be
        consumed at most once even under concurrent requests.

        Raises:
            InvalidResetTokenError: If the token is unknown, used or expired

        """
        stmt = (
            update(PasswordResetToken)
            .where(
                PasswordResetToken.token_hash == hash_token(token),
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > utcnow(),
            )
            .values(used=True)
            .returning(PasswordResetToken.user_id)
        )
        user_id = (await session.execute(stmt)).scalar_one_or_none()
        if user_id is None:
            raise InvalidResetTokenError("Invalid or expired password reset token")
        return user_id

    async def cleanup_expired(self, session: AsyncSession) -> CleanupResult:
        """Delete expired grants, sessions, reset tokens and stale login attempts.

        Delete-only and keyed on expiry comparisons, so it is safe to run
        alongside live traffic.
        """
        now = utcnow()
        expired_sessions = select(UserSession.id).where(UserSession.expires_at < now)

        grants = await session.execute(
            delete(RefreshToken)
            .where(or_(RefreshToken.expires_at < now, RefreshToken.session_id.in_(expired_sessions)))
            .execution_options(synchronize_session=False)
        )
        sessions = await session.execute(
            delete(UserSession).where(UserSession.expires_at < now).execution_options(synchronize_session=False)
        )
        reset_tokens = await session.execute(
            delete(PasswordResetToken)
            .where(PasswordResetToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        attempts = await session.execute(
            delete(LoginAttempt)
            .where(LoginAttempt.attempted_at < now - self._attempt_retention)
            .execution_options(synchronize_session=False)
        )

        return CleanupResult(
            refresh_tokens=grants.rowcount or 0,
            sessions=sessions.rowcount or 0,
            reset_tokens=reset_tokens.rowcount or 0,
            login_attempts=attempts.rowcount or 0,
        )


session_store = SessionStore(settings, token_codec)
