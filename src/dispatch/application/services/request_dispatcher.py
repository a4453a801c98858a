from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.dispatch.domain.entities import (
    ActivityHistory,
    BloodRequest,
    BloodRequestDraft,
    DispatchReceipt,
    DispatchRecord,
    DispatchStatus,
    RequestAlert,
    RequestStatus,
)
from src.dispatch.domain.exceptions import AlreadyAccepted
from src.dispatch.infrastructure.repositories import (
    SQLAlchemyBloodRequestRepository,
    SQLAlchemyIdempotencyKeyRepository,
    SQLAlchemyRequestDispatchRepository,
)
from src.geo.domain.entities import GeoMatch
from src.geo.domain.repositories import GeoIndex, Geocoder, ResponderDirectory
from src.geo.domain.value_objects import Coordinate, bounding_box, distance_km
from src.inventory.application.services.stock_ledger import StockLedger
from src.inventory.domain.entities import DonationDraft, DonationSource
from src.inventory.infrastructure.repositories import SQLAlchemyDonationRepository
from src.notifications.domain.gateway import (
    DeliveryOutcome,
    NotificationGateway,
    NotificationPayload,
    Recipient,
)
from src.shared.domain.actor import Actor, ActorKind
from src.shared.exceptions import (
    ForbiddenError,
    InvalidQuantity,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from src.shared.infrastructure.database.sqlalchemy_unit_of_work import SQLAlchemyUnitOfWork
from src.shared.logging import get_logger, time_block

logger = get_logger(__name__)

GEOCODE_WARNING = "Address could not be geocoded. Location-based alerts were not sent."


class RequestDispatcher:
    """
    Lifecycle of blood requests and their fan-out to nearby responders.

    Every status change is one guarded UPDATE; the row count tells a win from
    a lost race. Who has been told about a request lives in
    `request_dispatches`, so dispatching twice never notifies anyone twice.
    Delivery happens in background tasks owned by this object; call
    `drain()` (tests) or `aclose()` (shutdown) to wait for them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        geo_index: GeoIndex,
        gateway: NotificationGateway,
        directory: Optional[ResponderDirectory] = None,
        geocoder: Optional[Geocoder] = None,
        stock_ledger: Optional[StockLedger] = None,
        radius_km: float = 35.0,
    ) -> None:
        self._sessions = session_factory
        self._geo = geo_index
        self._gateway = gateway
        self._directory = directory
        self._geocoder = geocoder
        self._stock = stock_ledger or StockLedger(session_factory)
        self.radius_km = radius_km
        self._tasks: Set[asyncio.Task] = set()

    # ---------- lifecycle ----------

    async def create(self, draft: BloodRequestDraft, *, idempotency_key: Optional[str] = None) -> DispatchReceipt:
        if draft.units_needed < 1:
            raise InvalidQuantity("units_needed must be at least 1", details={"units_needed": draft.units_needed})
        if draft.location is None and not (draft.address and draft.address.strip()):
            raise ValidationError("Address is required")

        if idempotency_key:
            async with self._sessions() as session:
                keys = SQLAlchemyIdempotencyKeyRepository(session)
                existing_id = await keys.lookup(draft.requester, idempotency_key)
            if existing_id is not None:
                return await self._replay(idempotency_key, existing_id)

        warnings: List[str] = []
        if draft.location is None:
            location = await self._geocode(draft.address)
            if location is None:
                warnings.append(GEOCODE_WARNING)
            else:
                draft = BloodRequestDraft(
                    requester=draft.requester,
                    blood_group=draft.blood_group,
                    units_needed=draft.units_needed,
                    location=location,
                    address=draft.address,
                )

        taken_by = None
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            request = await SQLAlchemyBloodRequestRepository(uow.session).add(draft)
            if idempotency_key:
                taken_by = await SQLAlchemyIdempotencyKeyRepository(uow.session).claim(
                    draft.requester, idempotency_key, request.id
                )
            # a concurrent create with the same key committed first: leave ours uncommitted
            if taken_by is None:
                await uow.commit()
        if taken_by is not None:
            return await self._replay(idempotency_key, taken_by)

        logger.info(
            "blood_request_created",
            request_id=request.id,
            requester=str(request.requester),
            blood_group=request.blood_group.value,
            units_needed=request.units_needed,
            located=request.location is not None,
        )
        receipt = await self.dispatch(request.id)
        receipt.warnings = warnings + receipt.warnings
        return receipt

    async def _replay(self, key: str, request_id: int) -> DispatchReceipt:
        logger.info("blood_request_replayed", idempotency_key=key, request_id=request_id)
        return await self.dispatch(request_id)

    async def _geocode(self, address: Optional[str]) -> Optional[Coordinate]:
        if self._geocoder is None or not address:
            return None
        return await self._geocoder.geocode(address)

    async def dispatch(self, request_id: int) -> DispatchReceipt:
        request = await self.get(request_id)
        if request.status is not RequestStatus.ACTIVE or request.location is None:
            logger.info(
                "dispatch_skipped",
                request_id=request_id,
                status=request.status.value,
                located=request.location is not None,
            )
            return DispatchReceipt(request=request)

        with time_block("dispatch.fanout", logger=logger, labels={"request_id": str(request_id)}):
            matches = await self._candidates(request)

        by_actor: Dict[Actor, GeoMatch] = {}
        for m in matches:
            by_actor.setdefault(m.entity.actor, m)
        candidates = list(by_actor)

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            fresh = await SQLAlchemyRequestDispatchRepository(uow.session).claim(request.id, candidates)
            await uow.commit()

        logger.info(
            "blood_request_dispatched",
            request_id=request.id,
            candidates=len(candidates),
            notified=len(fresh),
            already_notified=len(candidates) - len(fresh),
        )
        receipt = DispatchReceipt(request=request, recipients=fresh)
        if fresh:
            recipients = [
                Recipient(
                    actor=a,
                    name=by_actor[a].entity.name,
                    email=by_actor[a].entity.email,
                    phone=by_actor[a].entity.phone,
                )
                for a in fresh
            ]
            receipt.delivery = self._spawn(self._deliver(request.id, recipients, _new_request_payload(request)))
        return receipt

    async def _candidates(self, request: BloodRequest) -> List[GeoMatch]:
        center, radius, group, me = request.location, self.radius_km, request.blood_group, request.requester
        matches: List[GeoMatch] = []
        matches += await self._geo.find_within(center, radius, ActorKind.USER, blood_group=group, exclude=me)
        matches += await self._geo.find_within(center, radius, ActorKind.NGO, exclude=me)
        matches += await self._geo.find_within(center, radius, ActorKind.BLOOD_BANK, exclude=me)
        matches += await self._geo.find_within(center, radius, ActorKind.BLOOD_BANK, blood_group=group, exclude=me)
        matches.sort(key=lambda m: (m.distance_km, m.entity.kind.value, m.entity.id))
        return matches

    async def accept(self, request_id: int, acceptor: Actor) -> BloodRequest:
        current = await self.get(request_id)
        if current.status is RequestStatus.ACTIVE and current.requester == acceptor:
            raise ValidationError("You cannot accept your own blood request", details={"request_id": request_id})

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            requests = SQLAlchemyBloodRequestRepository(uow.session)
            accepted = await requests.accept(request_id, acceptor)
            if accepted is None:
                latest = await requests.get(request_id)
                if latest is None:
                    raise NotFoundError(f"Blood request {request_id} not found")
                if latest.status is RequestStatus.ACCEPTED:
                    logger.info(
                        "accept_lost_race",
                        request_id=request_id,
                        acceptor=str(acceptor),
                        accepted_by=str(latest.acceptor),
                    )
                    raise AlreadyAccepted(
                        "This blood request has already been accepted",
                        details={"request_id": request_id},
                    )
                raise InvalidTransition(
                    f"Blood request is {latest.status.value}",
                    details={"from": latest.status.value, "to": RequestStatus.ACCEPTED.value},
                )
            await uow.commit()

        logger.info("blood_request_accepted", request_id=request_id, acceptor=str(acceptor))
        self._announce(
            accepted,
            acceptor,
            NotificationPayload(
                event="blood_request.accepted",
                title="Blood request accepted",
                body=f"The {accepted.blood_group.value} request has been accepted and is no longer open.",
                data={"request_id": accepted.id, "status": accepted.status.value},
            ),
        )
        return accepted

    async def fulfill(self, request_id: int, fulfiller: Actor) -> BloodRequest:
        """
        accepted → fulfilled by the recorded acceptor. A blood bank acceptor
        pays out of its stock; anyone else is credited with a donation.
        Both happen in the same transaction as the status change.
        """
        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            requests = SQLAlchemyBloodRequestRepository(uow.session)
            fulfilled = await requests.fulfill(request_id, fulfiller)
            if fulfilled is None:
                latest = await requests.get(request_id)
                if latest is None:
                    raise NotFoundError(f"Blood request {request_id} not found")
                if latest.status is RequestStatus.ACCEPTED:
                    raise ForbiddenError(
                        "Only the responder who accepted this request can fulfil it",
                        details={"request_id": request_id},
                    )
                raise InvalidTransition(
                    f"Blood request is {latest.status.value}",
                    details={"from": latest.status.value, "to": RequestStatus.FULFILLED.value},
                )

            donation_id = None
            if fulfiller.is_blood_bank:
                await self._stock.adjust(
                    fulfiller.id, fulfilled.blood_group, -fulfilled.units_needed, session=uow.session
                )
            else:
                donation = await SQLAlchemyDonationRepository(uow.session).add(
                    DonationDraft(
                        donor=fulfiller,
                        blood_group=fulfilled.blood_group,
                        units=fulfilled.units_needed,
                        source=DonationSource.BLOOD_REQUEST,
                        request_id=fulfilled.id,
                    )
                )
                donation_id = donation.id
            await uow.commit()

        logger.info(
            "blood_request_fulfilled",
            request_id=request_id,
            fulfiller=str(fulfiller),
            units=fulfilled.units_needed,
            donation_id=donation_id,
        )
        return fulfilled

    async def cancel(
        self,
        request_id: int,
        actor: Actor,
        *,
        reason: Optional[str] = None,
        actor_name: Optional[str] = None,
    ) -> BloodRequest:
        if actor_name is None and self._directory is not None:
            profile = await self._directory.profile(actor)
            actor_name = profile.name if profile else None

        async with SQLAlchemyUnitOfWork(self._sessions) as uow:
            requests = SQLAlchemyBloodRequestRepository(uow.session)
            cancelled = await requests.cancel(request_id, reason, actor_name, actor=actor)
            if cancelled is None:
                latest = await requests.get(request_id)
                if latest is None:
                    raise NotFoundError(f"Blood request {request_id} not found")
                if not latest.involves(actor):
                    raise ForbiddenError(
                        "Only the requester or the acceptor can cancel this request",
                        details={"request_id": request_id},
                    )
                raise InvalidTransition(
                    f"Blood request is {latest.status.value}",
                    details={"from": latest.status.value, "to": RequestStatus.CANCELLED.value},
                )
            await uow.commit()

        logger.info("blood_request_cancelled", request_id=request_id, cancelled_by=str(actor), reason=reason)
        self._announce(
            cancelled,
            actor,
            NotificationPayload(
                event="blood_request.cancelled",
                title="Blood request closed",
                body=f"The {cancelled.blood_group.value} request was cancelled.",
                data={"request_id": cancelled.id, "status": cancelled.status.value, "reason": reason},
            ),
        )
        return cancelled

    # ---------- queries ----------

    async def get(self, request_id: int) -> BloodRequest:
        async with self._sessions() as session:
            request = await SQLAlchemyBloodRequestRepository(session).get(request_id)
        if request is None:
            raise NotFoundError(f"Blood request {request_id} not found")
        return request

    async def list_for_requester(self, requester: Actor) -> List[BloodRequest]:
        async with self._sessions() as session:
            return await SQLAlchemyBloodRequestRepository(session).list_for_requester(requester)

    async def history(self, actor: Actor) -> ActivityHistory:
        async with self._sessions() as session:
            donations = await SQLAlchemyDonationRepository(session).list_for_donor(actor.kind.value, actor.id)
            requests = await SQLAlchemyBloodRequestRepository(session).list_for_requester(actor)
        return ActivityHistory(donations=donations, requests=requests)

    async def alerts_near(
        self,
        actor: Actor,
        center: Optional[Coordinate] = None,
        radius_km: Optional[float] = None,
    ) -> List[RequestAlert]:
        """Active requests around `center` (or the actor's registered location), newest first."""
        radius = self.radius_km if radius_km is None else radius_km
        if radius < 0:
            raise ValidationError("radius_km must be >= 0", details={"radius_km": radius})
        if center is None:
            profile = await self._directory.profile(actor) if self._directory else None
            if profile is None or profile.location is None:
                raise ValidationError("Set a location in your profile to receive alerts")
            center = profile.location

        async with self._sessions() as session:
            active = await SQLAlchemyBloodRequestRepository(session).list_active_located(
                bounding_box(center, radius)
            )
        alerts = []
        for r in active:
            if r.requester == actor:
                continue
            d = distance_km(center, r.location)
            if d <= radius:
                alerts.append(RequestAlert(request=r, distance_km=d))
        return alerts

    async def dispatches(self, request_id: int) -> List[DispatchRecord]:
        await self.get(request_id)
        async with self._sessions() as session:
            return await SQLAlchemyRequestDispatchRepository(session).list_for_request(request_id)

    # ---------- delivery ----------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, request_id: int, recipients: List[Recipient], payload: NotificationPayload) -> None:
        try:
            outcomes = await self._gateway.notify(recipients, payload)
        except Exception as e:
            logger.warning("dispatch_gateway_error", request_id=request_id, error=str(e), error_type=type(e).__name__)
            outcomes = [DeliveryOutcome.failed(r.actor, str(e) or type(e).__name__) for r in recipients]

        failed = [o for o in outcomes if not o.delivered]
        for o in failed:
            logger.warning("dispatch_delivery_failed", request_id=request_id, recipient=str(o.recipient), error=o.error)
        try:
            async with SQLAlchemyUnitOfWork(self._sessions) as uow:
                ledger = SQLAlchemyRequestDispatchRepository(uow.session)
                for o in outcomes:
                    status = DispatchStatus.DELIVERED if o.delivered else DispatchStatus.FAILED
                    await ledger.mark(request_id, o.recipient, status, o.error)
                await uow.commit()
        except Exception:
            logger.exception("dispatch_outcomes_not_recorded", request_id=request_id)
            return
        logger.info(
            "dispatch_delivery_recorded",
            request_id=request_id,
            delivered=len(outcomes) - len(failed),
            failed=len(failed),
        )

    def _announce(self, request: BloodRequest, actor: Actor, payload: NotificationPayload) -> None:
        self._spawn(self._broadcast(request, actor, payload))

    async def _broadcast(self, request: BloodRequest, actor: Actor, payload: NotificationPayload) -> None:
        """Tell everyone who heard about the request (and its requester) that it closed."""
        request_id = request.id
        try:
            async with self._sessions() as session:
                records = await SQLAlchemyRequestDispatchRepository(session).list_for_request(request_id)
            audience = [request.requester] + [r.recipient for r in records]
            recipients = [Recipient(actor=a) for a in dict.fromkeys(audience) if a != actor]
            if not recipients:
                return
            outcomes = await self._gateway.notify(recipients, payload)
        except Exception as e:
            logger.warning("request_update_not_sent", request_id=request_id, notification_event=payload.event, error=str(e))
            return
        failed = sum(1 for o in outcomes if not o.delivered)
        if failed:
            logger.warning("request_update_not_sent", request_id=request_id, notification_event=payload.event, failed=failed)

    async def drain(self) -> None:
        """Wait for every delivery task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()


def _new_request_payload(request: BloodRequest) -> NotificationPayload:
    return NotificationPayload(
        event="blood_request.new",
        title=f"Urgent: {request.blood_group.value} blood needed",
        body=f"{request.units_needed} unit(s) of {request.blood_group.value} needed near {request.address or 'you'}.",
        data={
            "request_id": request.id,
            "blood_group": request.blood_group.value,
            "units_needed": request.units_needed,
            "address": request.address,
            "created_at": request.created_at.isoformat() if request.created_at else None,
        },
    )
