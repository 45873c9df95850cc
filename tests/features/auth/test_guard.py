"""Tests for per-identifier login attempt tracking."""

from datetime import timedelta

from sqlalchemy import select

from authkeeper.config.settings import settings
from authkeeper.database.base import utcnow
from authkeeper.features.auth import guard as guard_module
from authkeeper.features.auth.guard import LoginAttemptGuard
from authkeeper.features.auth.models import LoginAttempt


class TestLoginAttemptGuard:
    async def test_record_attempt_persists_row(self, session):
        await LoginAttemptGuard.record_attempt("alice", "10.0.0.1", "pytest", success=False)

        rows = (await session.execute(select(LoginAttempt))).scalars().all()
        assert len(rows) == 1
        assert rows[0].identifier == "alice"
        assert rows[0].ip_address == "10.0.0.1"
        assert rows[0].success is False

    async def test_locks_at_threshold(self, db_engine):
        for _ in range(settings.max_failed_login_attempts - 1):
            await LoginAttemptGuard.record_attempt("bob", None, None, success=False)
        assert await LoginAttemptGuard.is_locked("bob") is False

        await LoginAttemptGuard.record_attempt("bob", None, None, success=False)
        assert await LoginAttemptGuard.is_locked("bob") is True

    async def test_success_resets_count(self, db_engine):
        for _ in range(settings.max_failed_login_attempts):
            await LoginAttemptGuard.record_attempt("carol", None, None, success=False)
        await LoginAttemptGuard.record_attempt("carol", None, None, success=True)

        assert await LoginAttemptGuard.recent_failures("carol") == 0
        assert await LoginAttemptGuard.is_locked("carol") is False

    async def test_failures_outside_window_ignored(self, session):
        old = utcnow() - timedelta(minutes=settings.identifier_failure_window_minutes + 1)
        session.add_all(
            [LoginAttempt(identifier="dave", success=False, attempted_at=old) for _ in range(10)]
        )
        await session.commit()

        assert await LoginAttemptGuard.recent_failures("dave") == 0

    async def test_identifiers_tracked_separately(self, db_engine):
        for _ in range(settings.max_failed_login_attempts):
            await LoginAttemptGuard.record_attempt("erin", None, None, success=False)
        assert await LoginAttemptGuard.is_locked("frank") is False

    async def test_fails_open_when_store_unavailable(self, db_engine, monkeypatch):
        async def broken(identifier):
            raise RuntimeError("database down")

        monkeypatch.setattr(LoginAttemptGuard, "recent_failures", staticmethod(broken))
        assert await LoginAttemptGuard.is_locked("anyone") is False

    async def test_record_attempt_swallows_store_errors(self, db_engine, monkeypatch):
        def broken_session():
            raise RuntimeError("database down")

        monkeypatch.setattr(guard_module, "get_session", broken_session)
        await LoginAttemptGuard.record_attempt("alice", None, None, success=False)
