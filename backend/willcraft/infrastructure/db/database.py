"""
Database Configuration for Willcraft

Async SQLAlchemy engine and session management. The engine is created
lazily from DATABASE_URL; every statement is bounded by
DATABASE_COMMAND_TIMEOUT.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from willcraft.config.settings import settings
from willcraft.infrastructure.exceptions import DatabaseError, ServiceUnavailableError


logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Rewrite plain postgres URLs to the asyncpg driver."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine with driver specific statement timeouts.

    SQLite does not take pool sizing arguments, so those are only passed
    to server backends.
    """
    database_url = normalize_database_url(database_url)

    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": settings.database_command_timeout},
        )

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,  # Verify connections before use
        connect_args={"command_timeout": settings.database_command_timeout},
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by repositories."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


class DatabaseManager:
    """
    Manages async database connections and sessions.

    Implements Singleton pattern for connection pooling efficiency.
    """

    _instance: Optional["DatabaseManager"] = None
    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def __new__(cls) -> "DatabaseManager":
        """Singleton pattern ensures single connection pool."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create session factory."""
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        if not settings.database_url:
            raise ServiceUnavailableError(
                "Database is not configured",
                missing_keys=["DATABASE_URL"],
            )

        self._engine = create_engine_for_url(
            settings.database_url, echo=settings.database_echo
        )
        self._session_factory = create_session_factory(self._engine)

    async def close(self) -> None:
        """Close engine and dispose of connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


# Global instance (lazy initialization)
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    One short transaction on the given factory.

    Driver and SQL failures surface as DatabaseError; the original
    SQLAlchemy exception is kept on ``original_error``.

    Usage:
        async with session_scope(factory) as session:
            result = await session.execute(query)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database transaction failed: {type(e).__name__}: {e}")
            raise DatabaseError("Database operation failed", original_error=e) from e
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions outside FastAPI requests."""
    async with session_scope(get_db_manager().session_factory) as session:
        yield session


async def init_db() -> None:
    """Verify the database connection (called on app startup)."""
    async with get_session_context() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connection pool (called on app shutdown)."""
    db = get_db_manager()
    await db.close()
