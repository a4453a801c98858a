from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.scheduling.domain.entities import (
    Appointment,
    AppointmentSlot,
    AppointmentStatus,
    BookingInfo,
    DefaultAppointmentSlot,
    SlotTemplate,
)
from src.scheduling.domain.repositories import (
    AppointmentRepository,
    AppointmentSlotRepository,
    SlotTemplateRepository,
)
from src.scheduling.infrastructure.models import (
    AppointmentModel,
    AppointmentSlotModel,
    DefaultAppointmentSlotModel,
)
from src.shared.domain.blood_group import BloodGroup
from src.shared.domain.clock import utcnow
from src.shared.infrastructure.database.upsert import insert_for


def _template_to_domain(row: DefaultAppointmentSlotModel) -> DefaultAppointmentSlot:
    return DefaultAppointmentSlot(
        id=row.id,
        blood_bank_id=row.blood_bank_id,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        max_bookings=row.max_bookings,
        is_active=row.is_active,
    )


def _slot_to_domain(row: AppointmentSlotModel) -> AppointmentSlot:
    return AppointmentSlot(
        id=row.id,
        blood_bank_id=row.blood_bank_id,
        slot_date=row.slot_date,
        start_time=row.start_time,
        end_time=row.end_time,
        max_bookings=row.max_bookings,
        current_bookings=row.current_bookings,
        is_available=row.is_available,
    )


def _appointment_to_domain(row: AppointmentModel) -> Appointment:
    return Appointment(
        id=row.id,
        slot_id=row.slot_id,
        blood_bank_id=row.blood_bank_id,
        user_id=row.user_id,
        user_name=row.user_name,
        user_email=row.user_email,
        user_phone=row.user_phone,
        blood_group=BloodGroup(row.blood_group),
        appointment_date=row.appointment_date,
        appointment_time=row.appointment_time,
        status=AppointmentStatus(row.status),
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLAlchemySlotTemplateRepository(SlotTemplateRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def replace_for_bank(self, bank_id: int, templates: Iterable[SlotTemplate]) -> List[DefaultAppointmentSlot]:
        await self._session.execute(
            delete(DefaultAppointmentSlotModel).where(DefaultAppointmentSlotModel.blood_bank_id == bank_id)
        )
        now = utcnow()
        rows = [
            {
                "blood_bank_id": bank_id,
                "day_of_week": t.day_of_week,
                "start_time": t.start_time,
                "end_time": t.end_time,
                "max_bookings": t.max_bookings,
                "is_active": t.is_active,
                "created_at": now,
                "updated_at": now,
            }
            for t in templates
        ]
        if rows:
            await self._session.execute(insert(DefaultAppointmentSlotModel), rows)
        return await self.list_for_bank(bank_id)

    async def list_for_bank(self, bank_id: int, *, active_only: bool = False) -> List[DefaultAppointmentSlot]:
        stmt = select(DefaultAppointmentSlotModel).where(DefaultAppointmentSlotModel.blood_bank_id == bank_id)
        if active_only:
            stmt = stmt.where(DefaultAppointmentSlotModel.is_active.is_(True))
        stmt = stmt.order_by(DefaultAppointmentSlotModel.day_of_week, DefaultAppointmentSlotModel.start_time)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_template_to_domain(r) for r in rows]


class SQLAlchemyAppointmentSlotRepository(AppointmentSlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert_missing(self, rows: List[dict]) -> int:
        if not rows:
            return 0
        now = utcnow()
        values = [{**r, "current_bookings": 0, "created_at": now, "updated_at": now} for r in rows]
        stmt = (
            insert_for(self._session, AppointmentSlotModel)
            .values(values)
            .on_conflict_do_nothing(index_elements=["blood_bank_id", "slot_date", "start_time"])
            .returning(AppointmentSlotModel.id)
        )
        return len((await self._session.execute(stmt)).all())

    async def insert_one(self, row: dict) -> Optional[AppointmentSlot]:
        now = utcnow()
        stmt = (
            insert_for(self._session, AppointmentSlotModel)
            .values(**row, current_bookings=0, created_at=now, updated_at=now)
            .on_conflict_do_nothing(index_elements=["blood_bank_id", "slot_date", "start_time"])
            .returning(AppointmentSlotModel)
        )
        row_ = (await self._session.execute(stmt)).scalars().first()
        return _slot_to_domain(row_) if row_ else None

    async def get(self, slot_id: int) -> Optional[AppointmentSlot]:
        row = await self._session.get(AppointmentSlotModel, slot_id)
        return _slot_to_domain(row) if row else None

    async def list_between(self, bank_id: int, start: date, end: date) -> List[AppointmentSlot]:
        stmt = (
            select(AppointmentSlotModel)
            .where(
                AppointmentSlotModel.blood_bank_id == bank_id,
                AppointmentSlotModel.slot_date.between(start, end),
            )
            .order_by(AppointmentSlotModel.slot_date, AppointmentSlotModel.start_time)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_slot_to_domain(r) for r in rows]

    async def try_increment(self, slot_id: int) -> Optional[AppointmentSlot]:
        stmt = (
            update(AppointmentSlotModel)
            .where(
                AppointmentSlotModel.id == slot_id,
                AppointmentSlotModel.is_available.is_(True),
                AppointmentSlotModel.current_bookings < AppointmentSlotModel.max_bookings,
            )
            .values(current_bookings=AppointmentSlotModel.current_bookings + 1, updated_at=utcnow())
            .returning(AppointmentSlotModel)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _slot_to_domain(row) if row else None

    async def try_decrement(self, slot_id: int) -> Optional[AppointmentSlot]:
        stmt = (
            update(AppointmentSlotModel)
            .where(
                AppointmentSlotModel.id == slot_id,
                AppointmentSlotModel.current_bookings >= 1,
            )
            .values(current_bookings=AppointmentSlotModel.current_bookings - 1, updated_at=utcnow())
            .returning(AppointmentSlotModel)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _slot_to_domain(row) if row else None

    async def update_guarded(
        self,
        bank_id: int,
        slot_id: int,
        *,
        max_bookings: Optional[int],
        is_available: Optional[bool],
    ) -> Optional[AppointmentSlot]:
        values: dict = {"updated_at": utcnow()}
        stmt = update(AppointmentSlotModel).where(
            AppointmentSlotModel.id == slot_id,
            AppointmentSlotModel.blood_bank_id == bank_id,
        )
        if max_bookings is not None:
            values["max_bookings"] = max_bookings
            stmt = stmt.where(AppointmentSlotModel.current_bookings <= max_bookings)
        if is_available is not None:
            values["is_available"] = is_available
        stmt = (
            stmt.values(**values)
            .returning(AppointmentSlotModel)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _slot_to_domain(row) if row else None


class SQLAlchemyAppointmentRepository(AppointmentRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, slot: AppointmentSlot, booking: BookingInfo) -> Appointment:
        now = utcnow()
        stmt = (
            insert(AppointmentModel)
            .values(
                slot_id=slot.id,
                blood_bank_id=slot.blood_bank_id,
                user_id=booking.user_id,
                user_name=booking.user_name,
                user_email=booking.user_email,
                user_phone=booking.user_phone,
                blood_group=booking.blood_group.value,
                appointment_date=slot.slot_date,
                appointment_time=slot.start_time,
                status=AppointmentStatus.PENDING.value,
                notes=booking.notes,
                created_at=now,
                updated_at=now,
            )
            .returning(AppointmentModel)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _appointment_to_domain(row)

    async def get(self, appointment_id: int) -> Optional[Appointment]:
        row = await self._session.get(AppointmentModel, appointment_id)
        return _appointment_to_domain(row) if row else None

    async def has_active_booking(self, slot_id: int, user_id: int) -> bool:
        stmt = (
            select(AppointmentModel.id)
            .where(
                AppointmentModel.slot_id == slot_id,
                AppointmentModel.user_id == user_id,
                AppointmentModel.status != AppointmentStatus.CANCELLED.value,
            )
            .limit(1)
        )
        return (await self._session.execute(stmt)).first() is not None

    async def count_active(self, slot_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(AppointmentModel)
            .where(
                AppointmentModel.slot_id == slot_id,
                AppointmentModel.status != AppointmentStatus.CANCELLED.value,
            )
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        *,
        user_id: Optional[int] = None,
        bank_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        stmt = update(AppointmentModel).where(
            AppointmentModel.id == appointment_id,
            AppointmentModel.status.in_([s.value for s in target.sources()]),
        )
        if user_id is not None:
            stmt = stmt.where(AppointmentModel.user_id == user_id)
        if bank_id is not None:
            stmt = stmt.where(AppointmentModel.blood_bank_id == bank_id)
        stmt = (
            stmt.values(status=target.value, updated_at=utcnow())
            .returning(AppointmentModel)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _appointment_to_domain(row) if row else None

    async def list_for_user(self, user_id: int) -> List[Appointment]:
        stmt = (
            select(AppointmentModel)
            .where(AppointmentModel.user_id == user_id)
            .order_by(AppointmentModel.appointment_date.desc(), AppointmentModel.appointment_time.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_appointment_to_domain(r) for r in rows]

    async def list_for_bank(
        self,
        bank_id: int,
        *,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[date] = None,
    ) -> List[Appointment]:
        stmt = select(AppointmentModel).where(AppointmentModel.blood_bank_id == bank_id)
        if status is not None:
            stmt = stmt.where(AppointmentModel.status == status.value)
        if on_date is not None:
            stmt = stmt.where(AppointmentModel.appointment_date == on_date)
        stmt = stmt.order_by(AppointmentModel.appointment_date.desc(), AppointmentModel.appointment_time.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_appointment_to_domain(r) for r in rows]
