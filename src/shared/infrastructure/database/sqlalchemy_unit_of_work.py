"""
SQLAlchemy Implementation of Unit of Work
Manages database transactions with async SQLAlchemy sessions
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.shared.logging import get_logger

logger = get_logger(__name__)


class SQLAlchemyUnitOfWork:
    """
    SQLAlchemy-based Unit of Work implementation.

    Opens a session from the factory on enter and closes it on exit.
    Everything done through `uow.session` is one transaction: it either
    commits as a whole or rolls back as a whole.

    Usage:
        async with SQLAlchemyUnitOfWork(sessions) as uow:
            repo = SlotRepository(uow.session)
            ...
            await uow.commit()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self.session: AsyncSession | None = None
        self._committed = False

    async def __aenter__(self) -> SQLAlchemyUnitOfWork:
        self.session = self._session_factory()
        self._committed = False
        await self.session.begin()
        logger.debug("UnitOfWork transaction started")
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug(
                    "UnitOfWork rolled back due to exception",
                    exception=exc_type.__name__,
                )
            elif not self._committed:
                await self.rollback()
        finally:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            Exception: If commit fails (the transaction is rolled back first)
        """
        try:
            await self.session.commit()
            self._committed = True
            logger.debug("UnitOfWork transaction committed")
        except Exception as e:
            await self.rollback()
            logger.error("UnitOfWork commit failed", error=str(e))
            raise

    async def rollback(self) -> None:
        """Discard all changes made within this UoW context."""
        try:
            await self.session.rollback()
            self._committed = False
        except Exception as e:
            logger.error("UnitOfWork rollback failed", error=str(e))
            raise
