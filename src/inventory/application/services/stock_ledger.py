from __future__ import annotations

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.inventory.domain.entities import BloodStock
from src.inventory.domain.exceptions import InsufficientStock
from src.inventory.infrastructure.repositories import SQLAlchemyBloodStockRepository
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import InvalidQuantity, ValidationError
from src.shared.infrastructure.database.sqlalchemy_unit_of_work import SQLAlchemyUnitOfWork
from src.shared.logging import get_logger

logger = get_logger(__name__)


def _group(value) -> BloodGroup:
    try:
        return BloodGroup.parse(value)
    except ValueError as e:
        raise ValidationError(str(e), details={"blood_group": str(value)}) from e


class StockLedger:
    """
    Blood stock per (bank, group) with a hard floor of zero.

    Writes go through a single guarded UPDATE; a lost race or an overdraw
    surfaces as InsufficientStock, never as a negative count. Pass `session`
    to make a debit part of a caller's transaction (the caller commits).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    # ---------- writes ----------

    async def adjust(
        self,
        bank_id: int,
        blood_group: BloodGroup | str,
        delta: int,
        *,
        session: Optional[AsyncSession] = None,
    ) -> int:
        group = _group(blood_group)
        if delta == 0:
            raise InvalidQuantity("delta must be non-zero", details={"delta": delta})
        if session is not None:
            return await self._adjust(SQLAlchemyBloodStockRepository(session), bank_id, group, delta)
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            units = await self._adjust(SQLAlchemyBloodStockRepository(uow.session), bank_id, group, delta)
            await uow.commit()
        return units

    async def _adjust(self, repo: SQLAlchemyBloodStockRepository, bank_id: int, group: BloodGroup, delta: int) -> int:
        units = await repo.apply_delta(bank_id, group, delta)
        if units is None and delta > 0:
            units = await repo.insert_if_absent(bank_id, group, delta)
            if units is None:
                # row appeared between the two statements
                units = await repo.apply_delta(bank_id, group, delta)
        if units is None:
            available = await repo.units_of(bank_id, group)
            logger.info(
                "stock_debit_refused",
                blood_bank_id=bank_id,
                blood_group=group.value,
                delta=delta,
                units_available=available,
            )
            raise InsufficientStock(
                f"Blood bank {bank_id} holds {available} unit(s) of {group.value}",
                details={"blood_group": group.value, "requested": -delta, "available": available},
            )
        logger.info("stock_adjusted", blood_bank_id=bank_id, blood_group=group.value, delta=delta, units=units)
        return units

    async def set(self, bank_id: int, blood_group: BloodGroup | str, units: int) -> int:
        group = _group(blood_group)
        if units < 0:
            raise InvalidQuantity("units must be >= 0", details={"units": units})
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            stored = await SQLAlchemyBloodStockRepository(uow.session).upsert(bank_id, group, units)
            await uow.commit()
        logger.info("stock_set", blood_bank_id=bank_id, blood_group=group.value, units=stored)
        return stored

    # ---------- reads ----------

    async def levels(self, bank_id: int) -> List[BloodStock]:
        async with self._sessions() as session:
            return await SQLAlchemyBloodStockRepository(session).list_for_bank(bank_id)

    async def units(self, bank_id: int, blood_group: BloodGroup | str) -> int:
        group = _group(blood_group)
        async with self._sessions() as session:
            return await SQLAlchemyBloodStockRepository(session).units_of(bank_id, group)

    async def total(self, bank_id: int) -> int:
        return sum(s.units_available for s in await self.levels(bank_id))
