"""
Database session dependency for the API layer.

The ``DatabaseManager`` lives on ``app.state`` (created in the lifespan),
so request handlers reach it through the request instead of a global.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from .db_manager import DatabaseManager


def get_db_manager(request: Request) -> DatabaseManager:
    """Return the database manager attached to the running application."""
    return request.app.state.db_manager


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session as a FastAPI dependency.

    Usage:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            result = await session.execute(select(Item))
            return result.scalars().all()

    Yields:
        AsyncSession: SQLModel async session
    """
    async for session in get_db_manager(request).get_async_session():
        yield session
