from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.dispatch.domain.entities import (
    BloodRequest,
    BloodRequestDraft,
    DispatchRecord,
    DispatchStatus,
    RequestStatus,
)
from src.dispatch.domain.repositories import (
    BloodRequestRepository,
    IdempotencyKeyRepository,
    RequestDispatchRepository,
)
from src.dispatch.infrastructure.models import (
    BloodRequestModel,
    RequestDispatchModel,
    RequestIdempotencyModel,
)
from src.geo.domain.value_objects import Bounds, Coordinate
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup
from src.shared.domain.clock import utcnow
from src.shared.infrastructure.database.upsert import insert_for


def _request_to_domain(row: BloodRequestModel) -> BloodRequest:
    acceptor = None
    if row.accepted_by is not None and row.accepted_by_type is not None:
        acceptor = Actor.of(row.accepted_by_type, row.accepted_by)
    return BloodRequest(
        id=row.id,
        requester=Actor.of(row.requester_type, row.requester_id),
        blood_group=BloodGroup(row.blood_group),
        units_needed=row.units_needed,
        status=RequestStatus(row.status),
        location=Coordinate.maybe(row.latitude, row.longitude),
        address=row.address,
        acceptor=acceptor,
        accepted_at=row.accepted_at,
        cancel_reason=row.cancel_reason,
        last_cancel_reason=row.last_cancel_reason,
        last_cancelled_by_name=row.last_cancelled_by_name,
        created_at=row.created_at,
    )


def _dispatch_to_domain(row: RequestDispatchModel) -> DispatchRecord:
    return DispatchRecord(
        id=row.id,
        request_id=row.request_id,
        recipient=Actor.of(row.recipient_type, row.recipient_id),
        address=row.address,
        status=DispatchStatus(row.status),
        error=row.error,
        dispatched_at=row.dispatched_at,
        delivered_at=row.delivered_at,
    )


def _is(actor: Actor, kind_col, id_col):
    return and_(kind_col == actor.kind.value, id_col == actor.id)


class SQLAlchemyBloodRequestRepository(BloodRequestRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, draft: BloodRequestDraft) -> BloodRequest:
        stmt = (
            insert(BloodRequestModel)
            .values(
                requester_id=draft.requester.id,
                requester_type=draft.requester.kind.value,
                blood_group=draft.blood_group.value,
                units_needed=draft.units_needed,
                latitude=draft.location.lat if draft.location else None,
                longitude=draft.location.lng if draft.location else None,
                address=draft.address,
                status=RequestStatus.ACTIVE.value,
                created_at=utcnow(),
            )
            .returning(BloodRequestModel)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _request_to_domain(row)

    async def get(self, request_id: int) -> Optional[BloodRequest]:
        row = await self._session.get(BloodRequestModel, request_id)
        return _request_to_domain(row) if row else None

    async def _guarded(self, request_id: int, target: RequestStatus, *conditions, **values) -> Optional[BloodRequest]:
        stmt = (
            update(BloodRequestModel)
            .where(
                BloodRequestModel.id == request_id,
                BloodRequestModel.status.in_([s.value for s in target.sources()]),
                *conditions,
            )
            .values(status=target.value, **values)
            .returning(BloodRequestModel)
            .execution_options(synchronize_session=False)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return _request_to_domain(row) if row else None

    async def accept(self, request_id: int, acceptor: Actor) -> Optional[BloodRequest]:
        return await self._guarded(
            request_id,
            RequestStatus.ACCEPTED,
            accepted_by=acceptor.id,
            accepted_by_type=acceptor.kind.value,
            accepted_at=utcnow(),
        )

    async def fulfill(self, request_id: int, acceptor: Actor) -> Optional[BloodRequest]:
        return await self._guarded(
            request_id,
            RequestStatus.FULFILLED,
            _is(acceptor, BloodRequestModel.accepted_by_type, BloodRequestModel.accepted_by),
        )

    async def cancel(
        self,
        request_id: int,
        reason: Optional[str],
        cancelled_by_name: Optional[str],
        *,
        actor: Optional[Actor] = None,
    ) -> Optional[BloodRequest]:
        conditions = []
        if actor is not None:
            conditions.append(
                or_(
                    _is(actor, BloodRequestModel.requester_type, BloodRequestModel.requester_id),
                    _is(actor, BloodRequestModel.accepted_by_type, BloodRequestModel.accepted_by),
                )
            )
        return await self._guarded(
            request_id,
            RequestStatus.CANCELLED,
            *conditions,
            cancel_reason=reason,
            last_cancel_reason=reason,
            last_cancelled_by_name=cancelled_by_name,
            accepted_at=None,
        )

    async def list_for_requester(self, requester: Actor) -> List[BloodRequest]:
        stmt = (
            select(BloodRequestModel)
            .where(_is(requester, BloodRequestModel.requester_type, BloodRequestModel.requester_id))
            .order_by(BloodRequestModel.created_at.desc(), BloodRequestModel.id.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_request_to_domain(r) for r in rows]

    async def list_active_located(self, bounds: Optional[Bounds] = None) -> List[BloodRequest]:
        stmt = select(BloodRequestModel).where(
            BloodRequestModel.status == RequestStatus.ACTIVE.value,
            BloodRequestModel.latitude.is_not(None),
            BloodRequestModel.longitude.is_not(None),
        )
        if bounds is not None:
            min_lat, max_lat, min_lng, max_lng = bounds
            stmt = stmt.where(BloodRequestModel.latitude.between(min_lat, max_lat))
            if min_lng is not None:
                stmt = stmt.where(BloodRequestModel.longitude.between(min_lng, max_lng))
        stmt = stmt.order_by(BloodRequestModel.created_at.desc(), BloodRequestModel.id.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_request_to_domain(r) for r in rows]


class SQLAlchemyRequestDispatchRepository(RequestDispatchRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def claim(self, request_id: int, recipients: Sequence[Actor]) -> List[Actor]:
        if not recipients:
            return []
        now = utcnow()
        values = [
            {
                "request_id": request_id,
                "recipient_type": r.kind.value,
                "recipient_id": r.id,
                "address": r.room,
                "status": DispatchStatus.PENDING.value,
                "dispatched_at": now,
            }
            for r in recipients
        ]
        stmt = (
            insert_for(self._session, RequestDispatchModel)
            .values(values)
            .on_conflict_do_nothing(index_elements=["request_id", "recipient_type", "recipient_id"])
            .returning(RequestDispatchModel.recipient_type, RequestDispatchModel.recipient_id)
        )
        inserted = {(t, i) for t, i in (await self._session.execute(stmt)).all()}
        # keep the caller's (distance) order
        return [r for r in recipients if (r.kind.value, r.id) in inserted]

    async def mark(self, request_id: int, recipient: Actor, status: DispatchStatus, error: Optional[str] = None) -> None:
        await self._session.execute(
            update(RequestDispatchModel)
            .where(
                RequestDispatchModel.request_id == request_id,
                RequestDispatchModel.recipient_type == recipient.kind.value,
                RequestDispatchModel.recipient_id == recipient.id,
            )
            .values(
                status=status.value,
                error=error,
                delivered_at=utcnow() if status is DispatchStatus.DELIVERED else None,
            )
            .execution_options(synchronize_session=False)
        )

    async def list_for_request(self, request_id: int) -> List[DispatchRecord]:
        stmt = (
            select(RequestDispatchModel)
            .where(RequestDispatchModel.request_id == request_id)
            .order_by(RequestDispatchModel.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_dispatch_to_domain(r) for r in rows]


class SQLAlchemyIdempotencyKeyRepository(IdempotencyKeyRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def claim(self, requester: Actor, key: str, request_id: int) -> Optional[int]:
        stmt = (
            insert_for(self._session, RequestIdempotencyModel)
            .values(
                requester_type=requester.kind.value,
                requester_id=requester.id,
                key=key,
                request_id=request_id,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["requester_type", "requester_id", "key"])
            .returning(RequestIdempotencyModel.request_id)
        )
        if (await self._session.execute(stmt)).first() is not None:
            return None
        return await self.lookup(requester, key)

    async def lookup(self, requester: Actor, key: str) -> Optional[int]:
        stmt = select(RequestIdempotencyModel.request_id).where(
            RequestIdempotencyModel.requester_type == requester.kind.value,
            RequestIdempotencyModel.requester_id == requester.id,
            RequestIdempotencyModel.key == key,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()
