"""Database dependencies."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.database.client import get_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Get a request-scoped database session.

    Committed when the request completes, rolled back if it raises.
    """
    async with get_session() as session:
        yield session
