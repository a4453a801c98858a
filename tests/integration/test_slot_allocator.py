import asyncio
from datetime import date, time

import pytest
from sqlalchemy import select

from src.inventory.infrastructure.models import DonationModel
from src.scheduling.domain.entities import AppointmentStatus, BookingInfo, SlotTemplate
from src.scheduling.domain.exceptions import AlreadyBooked, SlotFull
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import ConflictError, InvalidTransition, InvariantViolation, NotFoundError, ValidationError

MONDAY = date(2030, 6, 3)


def booking(user_id: int, name: str = "Asha") -> BookingInfo:
    return BookingInfo(user_id=user_id, user_name=name, blood_group=BloodGroup.O_POS, user_email=f"{name}@example.org")


async def one_slot(allocator, bank, capacity: int = 3):
    return await allocator.create_one_off(bank.id, MONDAY, time(9), time(10), capacity)


async def test_materialize_is_idempotent(seed, allocator):
    bank = await seed.bank()
    await allocator.replace_defaults(
        bank.id,
        [
            SlotTemplate(day_of_week=1, start_time=time(9), end_time=time(10), max_bookings=2),
            SlotTemplate(day_of_week=1, start_time=time(10), end_time=time(11), max_bookings=2),
            SlotTemplate(day_of_week=2, start_time=time(9), end_time=time(10), is_active=False),
        ],
    )

    first = await allocator.materialize(bank.id, MONDAY, date(2030, 6, 9))
    second = await allocator.materialize(bank.id, MONDAY, date(2030, 6, 9))

    assert len(first) == 2
    assert [s.id for s in first] == [s.id for s in second]
    assert {s.slot_date for s in first} == {MONDAY}


async def test_materialize_does_not_touch_existing_slots(seed, allocator):
    bank = await seed.bank()
    one_off = await one_slot(allocator, bank, capacity=7)
    await allocator.replace_defaults(bank.id, [SlotTemplate(day_of_week=1, start_time=time(9), end_time=time(10), max_bookings=2)])

    slots = await allocator.materialize(bank.id, MONDAY, MONDAY)

    assert [(s.id, s.max_bookings) for s in slots] == [(one_off.id, 7)]


async def test_materialize_range_limits(seed, allocator):
    bank = await seed.bank()
    with pytest.raises(ValidationError):
        await allocator.materialize(bank.id, MONDAY, date(2030, 6, 1))
    with pytest.raises(ValidationError):
        await allocator.materialize(bank.id, MONDAY, date(2030, 8, 1))


async def test_replace_defaults_rejects_duplicates(seed, allocator):
    bank = await seed.bank()
    t = SlotTemplate(day_of_week=3, start_time=time(9), end_time=time(10))
    with pytest.raises(ValidationError):
        await allocator.replace_defaults(bank.id, [t, t])


async def test_concurrent_bookings_never_exceed_capacity(seed, allocator):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank, capacity=3)

    results = await asyncio.gather(
        *[allocator.book(slot.id, booking(user_id=i + 1, name=f"u{i}")) for i in range(10)],
        return_exceptions=True,
    )

    booked = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(booked) == 3
    assert all(isinstance(e, SlotFull) for e in refused)
    after = await allocator.get_slot(slot.id)
    assert after.current_bookings == 3
    assert await allocator.active_bookings(slot.id) == 3
    assert len(await allocator.appointments_for_bank(bank.id)) == 3


async def test_same_user_cannot_book_slot_twice(seed, allocator):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank)
    await allocator.book(slot.id, booking(1))

    with pytest.raises(AlreadyBooked):
        await allocator.book(slot.id, booking(1))

    assert (await allocator.get_slot(slot.id)).current_bookings == 1


async def test_booking_unknown_or_closed_slot(seed, allocator):
    bank = await seed.bank()
    with pytest.raises(NotFoundError):
        await allocator.book(999, booking(1))

    slot = await one_slot(allocator, bank)
    await allocator.update_slot(bank.id, slot.id, is_available=False)
    with pytest.raises(SlotFull):
        await allocator.book(slot.id, booking(1))


async def test_cancel_releases_capacity_once(seed, allocator):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank, capacity=1)
    appt = await allocator.book(slot.id, booking(1))

    cancelled = await allocator.cancel(appt.id, user_id=1)
    assert cancelled.status is AppointmentStatus.CANCELLED
    assert (await allocator.get_slot(slot.id)).current_bookings == 0
    assert await allocator.active_bookings(slot.id) == 0

    with pytest.raises(InvalidTransition):
        await allocator.cancel(appt.id, user_id=1)
    assert (await allocator.get_slot(slot.id)).current_bookings == 0

    # freed seat can be taken again, including by the same user
    again = await allocator.book(slot.id, booking(1))
    assert again.status is AppointmentStatus.PENDING
    assert await allocator.active_bookings(slot.id) == 1


async def test_cancel_scoped_to_owner(seed, allocator):
    bank = await seed.bank()
    other_bank = await seed.bank()
    slot = await one_slot(allocator, bank)
    appt = await allocator.book(slot.id, booking(1))

    with pytest.raises(NotFoundError):
        await allocator.cancel(appt.id, user_id=2)
    with pytest.raises(NotFoundError):
        await allocator.cancel(appt.id, bank_id=other_bank.id)

    await allocator.cancel(appt.id, bank_id=bank.id)


async def test_complete_records_donation_and_keeps_booking(seed, allocator, sessions):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank)
    appt = await allocator.book(slot.id, booking(1))

    await allocator.set_status(bank.id, appt.id, "confirmed")
    done = await allocator.set_status(bank.id, appt.id, AppointmentStatus.COMPLETED)

    assert done.status is AppointmentStatus.COMPLETED
    assert (await allocator.get_slot(slot.id)).current_bookings == 1
    async with sessions() as s:
        donation = (await s.execute(select(DonationModel))).scalar_one()
    assert donation.source == "appointment"
    assert donation.appointment_id == appt.id
    assert (donation.donor_type, donation.donor_id) == ("user", 1)

    with pytest.raises(InvalidTransition):
        await allocator.cancel(appt.id, bank_id=bank.id)


async def test_status_cannot_return_to_pending(seed, allocator):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank)
    appt = await allocator.book(slot.id, booking(1))
    with pytest.raises(InvalidTransition):
        await allocator.set_status(bank.id, appt.id, "pending")


async def test_capacity_cannot_drop_below_bookings(seed, allocator):
    bank = await seed.bank()
    slot = await one_slot(allocator, bank, capacity=3)
    await allocator.book(slot.id, booking(1))
    await allocator.book(slot.id, booking(2))

    with pytest.raises(InvariantViolation):
        await allocator.update_slot(bank.id, slot.id, max_bookings=1)

    shrunk = await allocator.update_slot(bank.id, slot.id, max_bookings=2)
    assert shrunk.max_bookings == 2
    assert shrunk.remaining == 0


async def test_available_slots_hides_full_ones(seed, allocator):
    bank = await seed.bank()
    full = await allocator.create_one_off(bank.id, MONDAY, time(8), time(9), 1)
    open_ = await allocator.create_one_off(bank.id, MONDAY, time(9), time(10), 1)
    await allocator.book(full.id, booking(1))

    available = await allocator.available_slots(bank.id, MONDAY)

    assert [s.id for s in available] == [open_.id]


async def test_one_off_slot_conflict(seed, allocator):
    bank = await seed.bank()
    await one_slot(allocator, bank)
    with pytest.raises(ConflictError):
        await one_slot(allocator, bank)


async def test_booking_notifies_bank(seed, allocator, gateway):
    bank = await seed.bank(name="Lifeline")
    slot = await one_slot(allocator, bank)
    await allocator.book(slot.id, booking(1))

    assert gateway.notified("appointment_booked") == [bank]
    recipient = gateway.calls[0][0][0]
    assert recipient.name == "Lifeline"


async def test_booking_survives_gateway_failure(seed, sessions, directory):
    from src.scheduling.application.services.slot_allocator import SlotAllocator
    from tests.helpers import RecordingGateway

    allocator = SlotAllocator(sessions, gateway=RecordingGateway(explode=True), directory=directory)
    bank = await seed.bank()
    slot = await one_slot(allocator, bank)

    appt = await allocator.book(slot.id, booking(1))

    assert appt.status is AppointmentStatus.PENDING


async def test_rematerialize_keeps_bookings_made_in_between(seed, allocator):
    bank = await seed.bank()
    await allocator.replace_defaults(bank.id, [SlotTemplate(day_of_week=1, start_time=time(9), end_time=time(10), max_bookings=2)])
    [slot] = await allocator.materialize(bank.id, MONDAY, MONDAY)
    await allocator.book(slot.id, booking(1))

    [again] = await allocator.materialize(bank.id, MONDAY, MONDAY)

    assert again.id == slot.id
    assert again.current_bookings == 1
