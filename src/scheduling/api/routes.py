from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from src.dependencies import (
    get_current_actor,
    get_responder_directory,
    get_slot_allocator,
    require_bank,
    require_kind,
)
from src.geo.domain.repositories import ResponderDirectory
from src.scheduling.api.schemas import (
    AppointmentResponse,
    AppointmentStatusRequest,
    BookRequest,
    MaterializeRequest,
    OneOffSlotRequest,
    ReplaceDefaultsRequest,
    SlotResponse,
    SlotTemplateResponse,
    SlotUpdateRequest,
)
from src.scheduling.application.services.slot_allocator import SlotAllocator
from src.scheduling.domain.entities import (
    Appointment,
    AppointmentSlot,
    AppointmentStatus,
    BookingInfo,
    SlotTemplate,
)
from src.shared.domain.actor import Actor, ActorKind
from src.shared.exceptions import NotFoundError, ValidationError

router = APIRouter(prefix="/api/v1/appointments", tags=["appointments"])


def _slot_out(s: AppointmentSlot) -> SlotResponse:
    return SlotResponse(
        id=s.id,
        blood_bank_id=s.blood_bank_id,
        slot_date=s.slot_date,
        start_time=s.start_time,
        end_time=s.end_time,
        max_bookings=s.max_bookings,
        current_bookings=s.current_bookings,
        is_available=s.is_available,
        available_slots=s.remaining,
    )


def _appointment_out(a: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=a.id,
        slot_id=a.slot_id,
        blood_bank_id=a.blood_bank_id,
        user_id=a.user_id,
        user_name=a.user_name,
        user_email=a.user_email,
        user_phone=a.user_phone,
        blood_group=a.blood_group.value,
        appointment_date=a.appointment_date,
        appointment_time=a.appointment_time,
        status=a.status.value,
        notes=a.notes,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


# ───────────────────────── bank schedule ─────────────────────────

@router.get("/banks/{bank_id}/defaults", response_model=list[SlotTemplateResponse])
async def list_defaults(bank_id: int, allocator: SlotAllocator = Depends(get_slot_allocator)):
    return [SlotTemplateResponse.model_validate(t) for t in await allocator.list_defaults(bank_id)]


@router.put("/banks/{bank_id}/defaults", response_model=list[SlotTemplateResponse])
async def replace_defaults(
    bank_id: int,
    payload: ReplaceDefaultsRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    templates = [
        SlotTemplate(
            day_of_week=s.day_of_week,
            start_time=s.start_time,
            end_time=s.end_time,
            max_bookings=s.max_bookings or allocator.default_capacity,
            is_active=s.is_active,
        )
        for s in payload.slots
    ]
    stored = await allocator.replace_defaults(bank_id, templates)
    return [SlotTemplateResponse.model_validate(t) for t in stored]


@router.post("/banks/{bank_id}/materialize", response_model=list[SlotResponse])
async def materialize(
    bank_id: int,
    payload: MaterializeRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    return [_slot_out(s) for s in await allocator.materialize(bank_id, payload.start_date, payload.end_date)]


@router.get("/banks/{bank_id}/slots", response_model=list[SlotResponse])
async def list_slots(
    bank_id: int,
    on_date: date = Query(alias="date"),
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    return [_slot_out(s) for s in await allocator.list_slots(bank_id, on_date)]


@router.post("/banks/{bank_id}/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def create_slot(
    bank_id: int,
    payload: OneOffSlotRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    slot = await allocator.create_one_off(
        bank_id, payload.slot_date, payload.start_time, payload.end_time, payload.max_bookings
    )
    return _slot_out(slot)


@router.patch("/banks/{bank_id}/slots/{slot_id}", response_model=SlotResponse)
async def update_slot(
    bank_id: int,
    slot_id: int,
    payload: SlotUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    slot = await allocator.update_slot(
        bank_id, slot_id, max_bookings=payload.max_bookings, is_available=payload.is_available
    )
    return _slot_out(slot)


@router.get("/banks/{bank_id}/available", response_model=list[SlotResponse])
async def available_slots(
    bank_id: int,
    on_date: date = Query(alias="date"),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    return [_slot_out(s) for s in await allocator.available_slots(bank_id, on_date)]


@router.get("/banks/{bank_id}/bookings", response_model=list[AppointmentResponse])
async def bank_bookings(
    bank_id: int,
    status_filter: Optional[AppointmentStatus] = Query(default=None, alias="status"),
    on_date: Optional[date] = Query(default=None, alias="date"),
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_bank(actor, bank_id)
    rows = await allocator.appointments_for_bank(bank_id, status=status_filter, on_date=on_date)
    return [_appointment_out(a) for a in rows]


# ───────────────────────── user bookings ─────────────────────────

@router.post("/book", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book(
    payload: BookRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
    directory: ResponderDirectory = Depends(get_responder_directory),
):
    require_kind(actor, ActorKind.USER)
    profile = await directory.profile(actor)
    if profile is None:
        raise NotFoundError(f"User {actor.id} not found")
    if profile.blood_group is None:
        raise ValidationError("Please update your blood group in your profile before booking")
    booking = BookingInfo(
        user_id=actor.id,
        user_name=profile.name,
        user_email=profile.email,
        user_phone=profile.phone,
        blood_group=profile.blood_group,
        notes=payload.notes,
    )
    return _appointment_out(await allocator.book(payload.slot_id, booking))


@router.get("/mine", response_model=list[AppointmentResponse])
async def my_appointments(
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_kind(actor, ActorKind.USER)
    return [_appointment_out(a) for a in await allocator.appointments_for_user(actor.id)]


@router.put("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    if actor.kind is ActorKind.BLOOD_BANK:
        cancelled = await allocator.cancel(appointment_id, bank_id=actor.id)
    else:
        require_kind(actor, ActorKind.USER)
        cancelled = await allocator.cancel(appointment_id, user_id=actor.id)
    return _appointment_out(cancelled)


@router.put("/{appointment_id}/status", response_model=AppointmentResponse)
async def set_status(
    appointment_id: int,
    payload: AppointmentStatusRequest,
    actor: Actor = Depends(get_current_actor),
    allocator: SlotAllocator = Depends(get_slot_allocator),
):
    require_kind(actor, ActorKind.BLOOD_BANK)
    return _appointment_out(await allocator.set_status(actor.id, appointment_id, payload.status))
