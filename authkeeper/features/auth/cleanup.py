"""Periodic purge of expired sessions, grants, reset tokens and login attempts."""

import asyncio
import logging

from authkeeper.database.client import get_session

from .session_store import CleanupResult, session_store

logger = logging.getLogger(__name__)


async def run_cleanup_once() -> CleanupResult:
    """Run one cleanup pass in its own transaction."""
    async with get_session() as session:
        result = await session_store.cleanup_expired(session)

    logger.info(
        f"Cleanup removed {result.refresh_tokens} refresh token(s), {result.sessions} session(s), "
        f"{result.reset_tokens} reset token(s), {result.login_attempts} login attempt(s)"
    )
    return result


async def run_periodic_cleanup(interval_seconds: int) -> None:
    """Background loop started from the application lifespan.

    A failed pass is logged and retried on the next tick; only cancellation
    stops the loop.
    """
    interval = max(interval_seconds, 1)
    try:
        while True:
            try:
                await run_cleanup_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cleanup pass failed; retrying next interval")
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("Cleanup task cancelled")
        raise
