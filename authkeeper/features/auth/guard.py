"""Per-identifier login attempt tracking."""

import logging
from datetime import timedelta

from sqlalchemy import func, select

from authkeeper.config.settings import settings
from authkeeper.database.base import utcnow
from authkeeper.database.client import get_session

from .models import LoginAttempt

logger = logging.getLogger(__name__)


class LoginAttemptGuard:
    """Audit log of login attempts plus a sliding-window failure count.

    Keyed by the identifier string the client typed, not by account, so
    guessing against identifiers that match no account is throttled too.
    Writes go through their own database session: a tracking failure is
    logged and never blocks or rolls back the login it describes.
    """

    @staticmethod
    async def record_attempt(
        identifier: str,
        ip_address: str | None,
        user_agent: str | None,
        success: bool,
    ) -> None:
        try:
            async with get_session() as session:
                session.add(
                    LoginAttempt(
                        identifier=identifier[:100],
                        ip_address=ip_address,
                        user_agent=user_agent[:500] if user_agent else None,
                        success=success,
                        attempted_at=utcnow(),
                    )
                )
        except Exception:
            logger.exception("Failed to record login attempt")

    @staticmethod
    async def recent_failures(identifier: str) -> int:
        """Failed attempts in the trailing window, counted after the latest success."""
        window_start = utcnow() - timedelta(minutes=settings.identifier_failure_window_minutes)

        async with get_session() as session:
            last_success = (
                await session.execute(
                    select(func.max(LoginAttempt.attempted_at)).where(
                        LoginAttempt.identifier == identifier,
                        LoginAttempt.success.is_(True),
                        LoginAttempt.attempted_at >= window_start,
                    )
                )
            ).scalar_one_or_none()

            stmt = select(func.count(LoginAttempt.id)).where(
                LoginAttempt.identifier == identifier,
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at >= window_start,
            )
            if last_success is not None:
                stmt = stmt.where(LoginAttempt.attempted_at > last_success)

            return (await session.execute(stmt)).scalar_one()

    @staticmethod
    async def is_locked(identifier: str) -> bool:
        """True when recent failures reach the threshold. Fails open."""
        try:
            failures = await LoginAttemptGuard.recent_failures(identifier)
        except Exception:
            logger.exception("Failed to read login attempts; allowing attempt")
            return False
        return failures >= settings.max_failed_login_attempts

    @staticmethod
    def retry_after_seconds() -> int:
        return settings.identifier_failure_window_minutes * 60
