from __future__ import annotations

from datetime import date, time, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.geo.domain.repositories import ResponderDirectory
from src.inventory.domain.entities import DonationDraft, DonationSource
from src.inventory.infrastructure.repositories import SQLAlchemyDonationRepository
from src.notifications.domain.gateway import NotificationGateway, NotificationPayload, Recipient
from src.scheduling.domain.entities import (
    Appointment,
    AppointmentSlot,
    AppointmentStatus,
    BookingInfo,
    DefaultAppointmentSlot,
    SlotTemplate,
    day_of_week,
)
from src.scheduling.domain.exceptions import AlreadyBooked, SlotFull
from src.scheduling.infrastructure.repositories import (
    SQLAlchemyAppointmentRepository,
    SQLAlchemyAppointmentSlotRepository,
    SQLAlchemySlotTemplateRepository,
)
from src.shared.domain.actor import Actor, ActorKind
from src.shared.exceptions import (
    ConflictError,
    InvalidTransition,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from src.shared.infrastructure.database.sqlalchemy_unit_of_work import SQLAlchemyUnitOfWork
from src.shared.logging import get_logger

logger = get_logger(__name__)


class SlotAllocator:
    """
    Weekly templates, dated slots and capacity-checked bookings for blood banks.

    `current_bookings` is only ever changed by one guarded UPDATE per booking
    or cancellation, inside the same transaction as the appointment row it
    accounts for. Nothing about a slot is cached between calls.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        gateway: Optional[NotificationGateway] = None,
        directory: Optional[ResponderDirectory] = None,
        max_materialize_days: int = 92,
        default_capacity: int = 5,
    ) -> None:
        self._sessions = session_factory
        self._gateway = gateway
        self._directory = directory
        self._max_days = max_materialize_days
        self.default_capacity = default_capacity

    # ---------- templates ----------

    async def replace_defaults(self, bank_id: int, templates: Sequence[SlotTemplate]) -> List[DefaultAppointmentSlot]:
        seen = set()
        for t in templates:
            key = (t.day_of_week, t.start_time)
            if key in seen:
                raise ValidationError(
                    "Duplicate template slot",
                    details={"day_of_week": t.day_of_week, "start_time": t.start_time.isoformat()},
                )
            seen.add(key)

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            stored = await SQLAlchemySlotTemplateRepository(uow.session).replace_for_bank(bank_id, templates)
            await uow.commit()
        logger.info("slot_templates_replaced", blood_bank_id=bank_id, count=len(stored))
        return stored

    async def list_defaults(self, bank_id: int) -> List[DefaultAppointmentSlot]:
        async with self._sessions() as session:
            return await SQLAlchemySlotTemplateRepository(session).list_for_bank(bank_id)

    # ---------- dated slots ----------

    async def materialize(self, bank_id: int, start_date: date, end_date: date) -> List[AppointmentSlot]:
        """
        Create the missing dated slots for [start_date, end_date] from active templates.
        Existing rows, booked or one-off, are never touched.
        """
        if end_date < start_date:
            raise ValidationError(
                "end_date must not be before start_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        days = (end_date - start_date).days + 1
        if days > self._max_days:
            raise ValidationError(
                f"Cannot materialize more than {self._max_days} days at once",
                details={"days": days},
            )

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            templates = await SQLAlchemySlotTemplateRepository(uow.session).list_for_bank(bank_id, active_only=True)
            by_day: dict = {}
            for t in templates:
                by_day.setdefault(t.day_of_week, []).append(t)

            rows = []
            for offset in range(days):
                d = start_date + timedelta(days=offset)
                for t in by_day.get(day_of_week(d), []):
                    rows.append(
                        {
                            "blood_bank_id": bank_id,
                            "slot_date": d,
                            "start_time": t.start_time,
                            "end_time": t.end_time,
                            "max_bookings": t.max_bookings,
                            "is_available": True,
                        }
                    )
            slots = SQLAlchemyAppointmentSlotRepository(uow.session)
            inserted = await slots.insert_missing(rows)
            result = await slots.list_between(bank_id, start_date, end_date)
            await uow.commit()

        logger.info(
            "slots_materialized",
            blood_bank_id=bank_id,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            inserted=inserted,
            total=len(result),
        )
        return result

    async def create_one_off(
        self,
        bank_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        max_bookings: Optional[int] = None,
    ) -> AppointmentSlot:
        capacity = self.default_capacity if max_bookings is None else max_bookings
        if start_time >= end_time:
            raise ValidationError("start_time must be before end_time")
        if capacity <= 0:
            raise ValidationError("max_bookings must be positive", details={"max_bookings": capacity})

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            slot = await SQLAlchemyAppointmentSlotRepository(uow.session).insert_one(
                {
                    "blood_bank_id": bank_id,
                    "slot_date": slot_date,
                    "start_time": start_time,
                    "end_time": end_time,
                    "max_bookings": capacity,
                    "is_available": True,
                }
            )
            if slot is None:
                raise ConflictError(
                    "A slot already exists at this date and start time",
                    details={"slot_date": slot_date.isoformat(), "start_time": start_time.isoformat()},
                )
            await uow.commit()
        logger.info("slot_created", blood_bank_id=bank_id, slot_id=slot.id, slot_date=slot_date.isoformat())
        return slot

    async def available_slots(self, bank_id: int, on_date: date) -> List[AppointmentSlot]:
        slots = await self.materialize(bank_id, on_date, on_date)
        return sorted((s for s in slots if s.is_bookable), key=lambda s: s.start_time)

    async def list_slots(self, bank_id: int, on_date: date) -> List[AppointmentSlot]:
        async with self._sessions() as session:
            return await SQLAlchemyAppointmentSlotRepository(session).list_between(bank_id, on_date, on_date)

    async def get_slot(self, slot_id: int) -> AppointmentSlot:
        async with self._sessions() as session:
            slot = await SQLAlchemyAppointmentSlotRepository(session).get(slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found")
        return slot

    async def update_slot(
        self,
        bank_id: int,
        slot_id: int,
        *,
        max_bookings: Optional[int] = None,
        is_available: Optional[bool] = None,
    ) -> AppointmentSlot:
        if max_bookings is not None and max_bookings <= 0:
            raise ValidationError("max_bookings must be positive", details={"max_bookings": max_bookings})

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            slots = SQLAlchemyAppointmentSlotRepository(uow.session)
            updated = await slots.update_guarded(bank_id, slot_id, max_bookings=max_bookings, is_available=is_available)
            if updated is None:
                current = await slots.get(slot_id)
                if current is None or current.blood_bank_id != bank_id:
                    raise NotFoundError(f"Slot {slot_id} not found")
                logger.warning(
                    "slot_capacity_below_bookings",
                    slot_id=slot_id,
                    max_bookings=max_bookings,
                    current_bookings=current.current_bookings,
                )
                raise InvariantViolation(
                    "max_bookings cannot drop below current_bookings",
                    details={"max_bookings": max_bookings, "current_bookings": current.current_bookings},
                )
            await uow.commit()
        logger.info("slot_updated", slot_id=slot_id, max_bookings=updated.max_bookings, is_available=updated.is_available)
        return updated

    # ---------- bookings ----------

    async def book(self, slot_id: int, booking: BookingInfo) -> Appointment:
        if booking.blood_group is None:
            raise ValidationError("A blood group is required to book an appointment")

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            slots = SQLAlchemyAppointmentSlotRepository(uow.session)
            slot = await slots.try_increment(slot_id)
            if slot is None:
                existing = await slots.get(slot_id)
                if existing is None:
                    raise NotFoundError(f"Slot {slot_id} not found")
                logger.info(
                    "booking_lost_race",
                    slot_id=slot_id,
                    current_bookings=existing.current_bookings,
                    max_bookings=existing.max_bookings,
                    is_available=existing.is_available,
                )
                raise SlotFull(
                    "This slot is no longer available",
                    details={"slot_id": slot_id, "max_bookings": existing.max_bookings},
                )
            appointments = SQLAlchemyAppointmentRepository(uow.session)
            if await appointments.has_active_booking(slot_id, booking.user_id):
                raise AlreadyBooked(
                    "You already have a booking for this slot",
                    details={"slot_id": slot_id},
                )
            appointment = await appointments.add(slot, booking)
            await uow.commit()

        logger.info(
            "appointment_booked",
            appointment_id=appointment.id,
            slot_id=slot_id,
            blood_bank_id=appointment.blood_bank_id,
            current_bookings=slot.current_bookings,
        )
        await self._notify_bank(appointment)
        return appointment

    async def cancel(
        self,
        appointment_id: int,
        *,
        user_id: Optional[int] = None,
        bank_id: Optional[int] = None,
    ) -> Appointment:
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            appointments = SQLAlchemyAppointmentRepository(uow.session)
            cancelled = await self._transition(
                appointments, appointment_id, AppointmentStatus.CANCELLED, user_id=user_id, bank_id=bank_id
            )
            slot = await SQLAlchemyAppointmentSlotRepository(uow.session).try_decrement(cancelled.slot_id)
            if slot is None:
                logger.error("slot_decrement_refused", slot_id=cancelled.slot_id, appointment_id=appointment_id)
                raise InvariantViolation(
                    "Slot has no booking to release",
                    details={"slot_id": cancelled.slot_id, "appointment_id": appointment_id},
                )
            await uow.commit()
        logger.info(
            "appointment_cancelled",
            appointment_id=appointment_id,
            slot_id=cancelled.slot_id,
            current_bookings=slot.current_bookings,
        )
        return cancelled

    async def confirm(self, appointment_id: int, *, bank_id: Optional[int] = None) -> Appointment:
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            confirmed = await self._transition(
                SQLAlchemyAppointmentRepository(uow.session),
                appointment_id,
                AppointmentStatus.CONFIRMED,
                bank_id=bank_id,
            )
            await uow.commit()
        logger.info("appointment_confirmed", appointment_id=appointment_id)
        return confirmed

    async def complete(self, appointment_id: int, *, bank_id: Optional[int] = None) -> Appointment:
        """Terminal. The slot was consumed at booking time, so bookings stay as they are."""
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            completed = await self._transition(
                SQLAlchemyAppointmentRepository(uow.session),
                appointment_id,
                AppointmentStatus.COMPLETED,
                bank_id=bank_id,
            )
            donation = await SQLAlchemyDonationRepository(uow.session).add(
                DonationDraft(
                    donor=Actor(ActorKind.USER, completed.user_id),
                    blood_group=completed.blood_group,
                    units=1,
                    source=DonationSource.APPOINTMENT,
                    appointment_id=completed.id,
                )
            )
            await uow.commit()
        logger.info("appointment_completed", appointment_id=appointment_id, donation_id=donation.id)
        return completed

    async def set_status(self, bank_id: int, appointment_id: int, status: AppointmentStatus | str) -> Appointment:
        target = AppointmentStatus(status)
        if target is AppointmentStatus.CONFIRMED:
            return await self.confirm(appointment_id, bank_id=bank_id)
        if target is AppointmentStatus.COMPLETED:
            return await self.complete(appointment_id, bank_id=bank_id)
        if target is AppointmentStatus.CANCELLED:
            return await self.cancel(appointment_id, bank_id=bank_id)
        raise InvalidTransition("Appointments cannot move back to pending", details={"status": target.value})

    async def _transition(
        self,
        appointments: SQLAlchemyAppointmentRepository,
        appointment_id: int,
        target: AppointmentStatus,
        *,
        user_id: Optional[int] = None,
        bank_id: Optional[int] = None,
    ) -> Appointment:
        moved = await appointments.transition(appointment_id, target, user_id=user_id, bank_id=bank_id)
        if moved is not None:
            return moved
        current = await appointments.get(appointment_id)
        if (
            current is None
            or (user_id is not None and current.user_id != user_id)
            or (bank_id is not None and current.blood_bank_id != bank_id)
        ):
            raise NotFoundError(f"Appointment {appointment_id} not found")
        raise InvalidTransition(
            f"Appointment is {current.status.value}",
            details={"from": current.status.value, "to": target.value},
        )

    # ---------- queries ----------

    async def appointments_for_user(self, user_id: int) -> List[Appointment]:
        async with self._sessions() as session:
            return await SQLAlchemyAppointmentRepository(session).list_for_user(user_id)

    async def appointments_for_bank(
        self,
        bank_id: int,
        *,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[date] = None,
    ) -> List[Appointment]:
        async with self._sessions() as session:
            return await SQLAlchemyAppointmentRepository(session).list_for_bank(bank_id, status=status, on_date=on_date)

    async def active_bookings(self, slot_id: int) -> int:
        """Non-cancelled appointments on the slot; equals the slot's current_bookings."""
        async with self._sessions() as session:
            return await SQLAlchemyAppointmentRepository(session).count_active(slot_id)

    # ---------- notifications ----------

    async def _notify_bank(self, appointment: Appointment) -> None:
        if self._gateway is None:
            return
        bank = Actor(ActorKind.BLOOD_BANK, appointment.blood_bank_id)
        payload = NotificationPayload(
            event="appointment_booked",
            title="New appointment booking",
            body=(
                f"{appointment.user_name} ({appointment.blood_group.value}) booked "
                f"{appointment.appointment_date.isoformat()} {appointment.appointment_time.strftime('%H:%M')}"
            ),
            data={"appointment_id": appointment.id, "slot_id": appointment.slot_id},
        )
        try:
            profile = await self._directory.profile(bank) if self._directory else None
            recipient = Recipient(
                actor=bank,
                name=profile.name if profile else None,
                email=profile.email if profile else None,
                phone=profile.phone if profile else None,
            )
            outcomes = await self._gateway.notify([recipient], payload)
        except Exception as e:
            logger.warning("booking_notification_failed", appointment_id=appointment.id, error=str(e))
            return
        for o in outcomes:
            if not o.delivered:
                logger.warning("booking_notification_failed", appointment_id=appointment.id, error=o.error)
