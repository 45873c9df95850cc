"""Test configuration and fixtures.

Test setup against an in-memory SQLite database:
1. .env.test is loaded before any application module reads settings
2. Each test gets a fresh in-memory database (one shared connection via StaticPool)
3. The application's session factory is rebound to that engine, so endpoints,
   the login-attempt guard and the cleanup task all see the same data
4. Fixtures commit what they create; the database is discarded after each test
"""

from collections.abc import AsyncGenerator
from pathlib import Path

from dotenv import load_dotenv

# Load test environment variables before settings are instantiated
test_env_path = Path(__file__).parent.parent / ".env.test"
load_dotenv(test_env_path, override=True)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from authkeeper import main as main_module  # noqa: E402
from authkeeper.database import client as db_module  # noqa: E402
from authkeeper.database.base import Base  # noqa: E402
from authkeeper.features.auth.hashing import credential_hasher  # noqa: E402
from authkeeper.features.auth.session_store import IssuedSession, session_store  # noqa: E402
from authkeeper.features.user.models import ADMIN_PERMISSION, User  # noqa: E402
from authkeeper.main import app  # noqa: E402
from authkeeper.shared.rate_limit import limiter  # noqa: E402

DEFAULT_PASSWORD = "TestPass123!"


# Database Setup - Function Scope (Fresh Database Per Test)


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory database with the full schema and bind the app to it."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    original_engine = db_module._engine
    original_factory = db_module._async_session_factory
    db_module.configure(engine)

    yield engine

    db_module._engine = original_engine
    db_module._async_session_factory = original_factory
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Session for arranging and inspecting data directly.

    Anything a test wants the application to see must be committed.
    """
    async with db_module.get_session_factory()() as async_session:
        yield async_session


# Mock Database Initialization


@pytest.fixture(autouse=True)
def mock_db_initialization(monkeypatch):
    """Mock init_db and close_db so lifespan doesn't interfere with tests."""

    async def mock_init_db():
        pass

    async def mock_close_db():
        pass

    monkeypatch.setattr(main_module, "init_db", mock_init_db)
    monkeypatch.setattr(main_module, "close_db", mock_close_db)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Keep limiter state and the enabled flag from leaking between tests."""
    enabled = limiter.enabled
    limiter.reset()
    yield
    limiter.enabled = enabled
    limiter.reset()


# FastAPI Client


@pytest_asyncio.fixture
async def client(db_engine: AsyncEngine) -> AsyncGenerator[AsyncClient]:
    """Unauthenticated async HTTP test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Test User Factories


@pytest_asyncio.fixture
async def make_user(session: AsyncSession):
    """Factory fixture to create committed test users.

    Usage:
        user = await make_user()                                # defaults
        admin = await make_user(permissions=[ADMIN_PERMISSION])  # admin
        locked = await make_user(account_locked=True)           # manually locked
    """
    counter = 0  # Counter for unique username/email/phone generation

    async def _factory(
        username=None,
        email=None,
        phone_prefix="+1",
        phone_number=None,
        password=DEFAULT_PASSWORD,
        permissions=None,
        **kwargs,
    ) -> User:
        nonlocal counter
        counter += 1

        user = User(
            username=username or f"testuser{counter}",
            email=email or f"testuser{counter}@example.com",
            phone_prefix=phone_prefix,
            phone_number=phone_number or f"555000{counter:04d}",
            full_name="Test",
            full_surname="User",
            hashed_password=credential_hasher.hash(password),
            permissions=permissions or [],
            **kwargs,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

    return _factory


@pytest_asyncio.fixture
async def make_session(session: AsyncSession):
    """Factory fixture opening a committed login session for a user."""

    async def _factory(user: User, ip_address="127.0.0.1", user_agent="pytest") -> IssuedSession:
        issued = await session_store.create_session(
            session, user.id, user.username, ip_address, user_agent, list(user.permissions or [])
        )
        await session.commit()
        return issued

    return _factory


@pytest_asyncio.fixture
async def auth_client(client: AsyncClient, make_user, make_session):
    """Authenticated client with a regular user.

    A real session is created and its access token is sent as a bearer
    header, so the whole request gate runs.

    Returns:
        tuple: (client, user, issued_session)

    """
    user = await make_user()
    issued = await make_session(user)
    client.headers["Authorization"] = f"Bearer {issued.access_token}"
    yield client, user, issued


@pytest_asyncio.fixture
async def admin_client(client: AsyncClient, make_user, make_session):
    """Same as auth_client but the user holds the admin permission.

    Returns:
        tuple: (client, user, issued_session)

    """
    user = await make_user(permissions=[ADMIN_PERMISSION])
    issued = await make_session(user)
    client.headers["Authorization"] = f"Bearer {issued.access_token}"
    yield client, user, issued


@pytest.fixture
def registration_payload():
    """Valid camelCase registration body; override fields per test."""

    def _payload(**overrides) -> dict:
        payload = {
            "username": "alice",
            "email": "alice@example.com",
            "phonePrefix": "+44",
            "phoneNumber": "2079460958",
            "password": "Str0ng!Pass",
            "fullName": "Alice",
            "fullSurname": "Liddell",
        }
        payload.update(overrides)
        return payload

    return _payload
