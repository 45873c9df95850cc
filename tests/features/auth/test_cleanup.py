"""Tests for the periodic cleanup task."""

import asyncio
from datetime import timedelta

import pytest

from authkeeper.database.base import utcnow
from authkeeper.features.auth import cleanup as cleanup_module
from authkeeper.features.auth.cleanup import run_cleanup_once, run_periodic_cleanup
from authkeeper.features.auth.models import UserSession
from authkeeper.features.auth.session_store import CleanupResult


class TestCleanup:
    async def test_run_once_purges_expired_sessions(self, session, make_user, make_session):
        user = await make_user()
        live = await make_session(user)
        expired = await make_session(user)
        row = await session.get(UserSession, expired.session_id)
        row.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()

        result = await run_cleanup_once()

        assert result.sessions == 1
        assert result.refresh_tokens == 1
        session.expunge_all()
        assert await session.get(UserSession, live.session_id) is not None
        assert await session.get(UserSession, expired.session_id) is None

    async def test_periodic_loop_survives_failures_and_stops_on_cancel(self, monkeypatch):
        calls = 0

        async def flaky_cleanup():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("database down")
            return CleanupResult(0, 0, 0, 0)

        monkeypatch.setattr(cleanup_module, "run_cleanup_once", flaky_cleanup)

        task = asyncio.create_task(run_periodic_cleanup(interval_seconds=0))
        while calls < 2:
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls >= 2
