from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status

from src.dependencies import get_current_actor, get_request_dispatcher
from src.dispatch.api.schemas import (
    ActivityHistoryResponse,
    ActorRef,
    BloodRequestAlertResponse,
    BloodRequestCancel,
    BloodRequestCreate,
    BloodRequestCreated,
    BloodRequestResponse,
    DispatchListResponse,
    DispatchRecordResponse,
    DonationResponse,
)
from src.dispatch.application.services.request_dispatcher import RequestDispatcher
from src.dispatch.domain.entities import BloodRequest, BloodRequestDraft
from src.geo.domain.value_objects import Coordinate
from src.inventory.domain.entities import Donation
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import ForbiddenError, ValidationError

router = APIRouter(prefix="/api/v1/blood-requests", tags=["blood-requests"])


def _ref(actor: Optional[Actor]) -> Optional[ActorRef]:
    return ActorRef(type=actor.kind.value, id=actor.id) if actor else None


def _out(r: BloodRequest) -> BloodRequestResponse:
    return BloodRequestResponse(
        id=r.id,
        requester=_ref(r.requester),
        blood_group=r.blood_group.value,
        units_needed=r.units_needed,
        latitude=r.location.lat if r.location else None,
        longitude=r.location.lng if r.location else None,
        address=r.address,
        status=r.status.value,
        accepted_by=_ref(r.acceptor),
        accepted_at=r.accepted_at,
        cancel_reason=r.cancel_reason,
        last_cancel_reason=r.last_cancel_reason,
        last_cancelled_by_name=r.last_cancelled_by_name,
        created_at=r.created_at,
    )


def _donation_out(d: Donation) -> DonationResponse:
    return DonationResponse(
        id=d.id,
        blood_group=d.blood_group.value,
        units=d.units,
        source=d.source.value,
        donated_at=d.donated_at,
        request_id=d.request_id,
        appointment_id=d.appointment_id,
    )


def _point(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinate]:
    if (lat is None) != (lng is None):
        raise ValidationError("latitude and longitude must be given together")
    return Coordinate.maybe(lat, lng)


@router.post("", response_model=BloodRequestCreated, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: BloodRequestCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    try:
        group = BloodGroup.parse(payload.blood_group)
    except ValueError as e:
        raise ValidationError(str(e), details={"blood_group": payload.blood_group}) from e
    draft = BloodRequestDraft(
        requester=actor,
        blood_group=group,
        units_needed=payload.units_needed,
        location=_point(payload.latitude, payload.longitude),
        address=payload.address,
    )
    receipt = await dispatcher.create(draft, idempotency_key=idempotency_key)
    return BloodRequestCreated(
        request=_out(receipt.request),
        alerts_sent=receipt.alerts_sent,
        warning=receipt.warnings[0] if receipt.warnings else None,
    )


@router.get("/mine", response_model=list[BloodRequestResponse])
async def my_requests(
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    return [_out(r) for r in await dispatcher.list_for_requester(actor)]


@router.get("/history", response_model=ActivityHistoryResponse)
async def my_history(
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    history = await dispatcher.history(actor)
    return ActivityHistoryResponse(
        donations=[_donation_out(d) for d in history.donations],
        requests=[_out(r) for r in history.requests],
    )


@router.get("/alerts", response_model=list[BloodRequestAlertResponse])
async def alerts(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: Optional[float] = Query(default=None, ge=0),
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    found = await dispatcher.alerts_near(actor, _point(lat, lng), radius_km)
    return [BloodRequestAlertResponse(request=_out(a.request), distance_km=round(a.distance_km, 2)) for a in found]


@router.get("/{request_id}", response_model=BloodRequestResponse)
async def get_request(request_id: int, dispatcher: RequestDispatcher = Depends(get_request_dispatcher)):
    return _out(await dispatcher.get(request_id))


@router.put("/{request_id}/accept", response_model=BloodRequestResponse)
async def accept_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    return _out(await dispatcher.accept(request_id, actor))


@router.put("/{request_id}/fulfill", response_model=BloodRequestResponse)
async def fulfill_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    return _out(await dispatcher.fulfill(request_id, actor))


@router.put("/{request_id}/cancel", response_model=BloodRequestResponse)
async def cancel_request(
    request_id: int,
    payload: Optional[BloodRequestCancel] = None,
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    reason = payload.reason if payload else None
    return _out(await dispatcher.cancel(request_id, actor, reason=reason))


@router.get("/{request_id}/dispatches", response_model=DispatchListResponse)
async def list_dispatches(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    dispatcher: RequestDispatcher = Depends(get_request_dispatcher),
):
    request = await dispatcher.get(request_id)
    if request.requester != actor:
        raise ForbiddenError("Only the requester can view dispatches", details={"request_id": request_id})
    records = await dispatcher.dispatches(request_id)
    return DispatchListResponse(
        request_id=request_id,
        dispatches=[
            DispatchRecordResponse(
                recipient=_ref(d.recipient),
                address=d.address,
                status=d.status.value,
                error=d.error,
                dispatched_at=d.dispatched_at,
                delivered_at=d.delivered_at,
            )
            for d in records
        ],
    )
