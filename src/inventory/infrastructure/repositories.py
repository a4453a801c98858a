from __future__ import annotations

from typing import List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.inventory.domain.entities import BloodStock, Donation, DonationDraft, DonationSource
from src.inventory.domain.repositories import BloodStockRepository, DonationRepository
from src.inventory.infrastructure.models import BloodStockModel, DonationModel
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup
from src.shared.domain.clock import utcnow
from src.shared.infrastructure.database.upsert import insert_for


def _stock_to_domain(row: BloodStockModel) -> BloodStock:
    return BloodStock(
        id=row.id,
        blood_bank_id=row.blood_bank_id,
        blood_group=BloodGroup(row.blood_group),
        units_available=row.units_available,
        updated_at=row.updated_at,
    )


def _donation_to_domain(row: DonationModel) -> Donation:
    return Donation(
        id=row.id,
        donor=Actor.of(row.donor_type, row.donor_id),
        blood_group=BloodGroup(row.blood_group),
        units=row.units,
        source=DonationSource(row.source),
        donated_at=row.donated_at,
        request_id=row.request_id,
        appointment_id=row.appointment_id,
    )


class SQLAlchemyBloodStockRepository(BloodStockRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def apply_delta(self, bank_id: int, group: BloodGroup, delta: int) -> Optional[int]:
        stmt = (
            update(BloodStockModel)
            .where(
                BloodStockModel.blood_bank_id == bank_id,
                BloodStockModel.blood_group == group.value,
                BloodStockModel.units_available + delta >= 0,
            )
            .values(units_available=BloodStockModel.units_available + delta, updated_at=utcnow())
            .returning(BloodStockModel.units_available)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).first()
        return int(row[0]) if row else None

    async def insert_if_absent(self, bank_id: int, group: BloodGroup, units: int) -> Optional[int]:
        stmt = (
            insert_for(self._session, BloodStockModel)
            .values(blood_bank_id=bank_id, blood_group=group.value, units_available=units, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=["blood_bank_id", "blood_group"])
            .returning(BloodStockModel.units_available)
        )
        row = (await self._session.execute(stmt)).first()
        return int(row[0]) if row else None

    async def upsert(self, bank_id: int, group: BloodGroup, units: int) -> int:
        now = utcnow()
        ins = insert_for(self._session, BloodStockModel).values(
            blood_bank_id=bank_id, blood_group=group.value, units_available=units, updated_at=now
        )
        stmt = ins.on_conflict_do_update(
            index_elements=["blood_bank_id", "blood_group"],
            set_={"units_available": units, "updated_at": now},
        ).returning(BloodStockModel.units_available)
        return int((await self._session.execute(stmt)).scalar_one())

    async def units_of(self, bank_id: int, group: BloodGroup) -> int:
        stmt = select(BloodStockModel.units_available).where(
            BloodStockModel.blood_bank_id == bank_id,
            BloodStockModel.blood_group == group.value,
        )
        units = (await self._session.execute(stmt)).scalar_one_or_none()
        return int(units or 0)

    async def list_for_bank(self, bank_id: int) -> List[BloodStock]:
        stmt = (
            select(BloodStockModel)
            .where(BloodStockModel.blood_bank_id == bank_id)
            .order_by(BloodStockModel.blood_group.asc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_stock_to_domain(r) for r in rows]


class SQLAlchemyDonationRepository(DonationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, draft: DonationDraft) -> Donation:
        stmt = (
            insert(DonationModel)
            .values(
                donor_id=draft.donor.id,
                donor_type=draft.donor.kind.value,
                request_id=draft.request_id,
                appointment_id=draft.appointment_id,
                blood_group=draft.blood_group.value,
                units=draft.units,
                source=draft.source.value,
                donated_at=utcnow(),
            )
            .returning(DonationModel)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _donation_to_domain(row)

    async def list_for_donor(self, donor_type: str, donor_id: int) -> List[Donation]:
        stmt = (
            select(DonationModel)
            .where(DonationModel.donor_type == donor_type, DonationModel.donor_id == donor_id)
            .order_by(DonationModel.donated_at.desc(), DonationModel.id.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_donation_to_domain(r) for r in rows]
