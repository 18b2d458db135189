"""
Database manager for X-Ray.

The manager owns the async engine and session factory. It is created
explicitly (by the API lifespan, the worker startup hook or a test
fixture) and passed to whatever needs it; there is no module level
instance.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from ..exceptions.domain import DatabaseConnectionError
from ..settings import Settings
from .logger import logger


def _pydantic_json_serializer(obj: Any) -> str:
    """JSON serializer that handles Pydantic objects in JSON columns."""

    def default(o: Any) -> Any:
        if hasattr(o, "model_dump"):
            return o.model_dump(mode="json")
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")

    return json.dumps(obj, default=default)


def is_connection_error(exc: BaseException) -> bool:
    """Tell whether an exception means the store is unreachable.

    Args:
        exc: Exception raised by the driver or SQLAlchemy.

    Returns:
        True for connection level failures.
    """
    if isinstance(exc, DatabaseConnectionError | ConnectionError | OSError | InterfaceError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if isinstance(exc.orig, ConnectionError | OSError):
            return True
        if isinstance(exc, OperationalError) and "connect" in str(exc).lower():
            return True
    return False


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """
    Manages database connections and sessions.

    Args:
        settings: Application settings.
        database_url: Optional async URL override (tests use
            ``sqlite+aiosqlite:///:memory:``).
    """

    def __init__(self, settings: Settings, database_url: str | None = None) -> None:
        self.settings = settings
        self.database_url = database_url or settings.async_database_url
        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _create_async_engine(self) -> AsyncEngine:
        """Create and configure the asynchronous database engine."""
        if self.is_sqlite:
            in_memory = ":memory:" in self.database_url
            engine = create_async_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool if in_memory else None,
                echo=self.settings.debug,
                json_serializer=_pydantic_json_serializer,
            )
            # SQLite only enforces referential integrity when asked to
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_async_engine(
                self.database_url,
                echo=self.settings.debug,
                pool_size=self.settings.database_pool_size,
                max_overflow=0,
                pool_pre_ping=True,
                json_serializer=_pydantic_json_serializer,
            )

        logger.info(f"Async database engine created: {engine.url.render_as_string()}")
        return engine

    @property
    def async_engine(self) -> AsyncEngine:
        """Get or create the asynchronous database engine."""
        if self._async_engine is None:
            self._async_engine = self._create_async_engine()
        return self._async_engine

    @property
    def async_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the async session factory."""
        if self._async_session_factory is None:
            self._async_session_factory = async_sessionmaker(
                self.async_engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._async_session_factory

    async def create_db_and_tables_async(self) -> None:
        """Create database tables asynchronously."""
        logger.info("Creating database tables (async)...")
        async with self.async_engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables created (async)")

    async def ping(self) -> None:
        """Run a trivial query.

        Raises:
            DatabaseConnectionError: If the store is unreachable.
        """
        try:
            async with self.async_engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseConnectionError(f"Database unavailable: {e}") from e

    @asynccontextmanager
    async def get_async_session_context(self) -> AsyncGenerator[AsyncSession]:
        """
        Get an async database session as a context manager.

        Usage:
            async with db_manager.get_async_session_context() as session:
                session.add(model_instance)

        Yields:
            AsyncSession: SQLModel async session
        """
        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Database error: {e}")
                await session.rollback()
                if is_connection_error(e):
                    raise DatabaseConnectionError("Database unavailable").with_context(
                        f"Database unavailable: {e}"
                    ) from e
                raise
            finally:
                await session.close()

    async def get_async_session(self) -> AsyncGenerator[AsyncSession]:
        """
        Get an async database session for a FastAPI dependency.

        Yields:
            AsyncSession: SQLModel async session
        """
        async with self.get_async_session_context() as session:
            yield session

    async def close(self) -> None:
        """Close all database connections."""
        if self._async_engine:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
            logger.info("Async database engine disposed")

    def __repr__(self) -> str:
        return (
            f"<DatabaseManager("
            f"url={self.database_url.split('@')[-1]}, "
            f"async_initialized={self._async_engine is not None}"
            f")>"
        )
