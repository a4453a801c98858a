"""
Database Session Factory
Creates async SQLAlchemy sessions with proper configuration
"""
from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.shared.logging import get_logger

logger = get_logger(__name__)

# seconds a SQLite writer waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 5


class DatabaseSessionFactory:
    """
    Factory for creating async database sessions.

    Manages the async engine and session maker. Postgres gets a pooled
    engine; SQLite gets one connection per session with a busy timeout so
    concurrent writers queue instead of failing.
    """

    def __init__(self, database_url: str, echo: bool = False, pool_size: int = 20, max_overflow: int = 10) -> None:
        """
        Args:
            database_url: postgresql+asyncpg:// or sqlite+aiosqlite:// URL
            echo: Whether to log SQL statements (debug mode)
            pool_size: Connection pool size (Postgres only)
            max_overflow: Max overflow connections beyond pool_size (Postgres only)
        """
        self.database_url = database_url
        self.echo = echo

        if database_url.startswith("sqlite"):
            self.engine: AsyncEngine = create_async_engine(
                database_url,
                echo=echo,
                poolclass=NullPool,
                connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
            )
        else:
            self.engine = create_async_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,  # Verify connections before using
                pool_recycle=3600,  # Recycle connections after 1 hour
            )

        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(
            "Database session factory initialized",
            dialect=self.engine.dialect.name,
            pool_size=pool_size,
            max_overflow=max_overflow,
        )

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yields a session for dependency injection; rolls back on error.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception as e:
                await session.rollback()
                logger.error("Session error, rolled back", error=str(e))
                raise

    async def dispose(self) -> None:
        """Close all connections and dispose of the engine."""
        await self.engine.dispose()
        logger.info("Database engine disposed")
