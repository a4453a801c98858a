from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from src.geo.domain.value_objects import Coordinate
from src.inventory.domain.entities import Donation
from src.shared.domain.actor import Actor
from src.shared.domain.blood_group import BloodGroup


class RequestStatus(str, Enum):
    ACTIVE = "active"
    ACCEPTED = "accepted"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

    def sources(self) -> FrozenSet["RequestStatus"]:
        """Statuses a request may move from into this one."""
        return _REQUEST_SOURCES[self]

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.FULFILLED, RequestStatus.CANCELLED)


_REQUEST_SOURCES = {
    RequestStatus.ACTIVE: frozenset(),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.ACTIVE}),
    RequestStatus.FULFILLED: frozenset({RequestStatus.ACCEPTED}),
    RequestStatus.CANCELLED: frozenset({RequestStatus.ACTIVE, RequestStatus.ACCEPTED}),
}


class DispatchStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class BloodRequest:
    """
    A need for blood raised by a user, NGO or blood bank.

    `acceptor` survives cancellation for audit; `accepted_at` is set only
    while the request is accepted or fulfilled.
    """
    id: int
    requester: Actor
    blood_group: BloodGroup
    units_needed: int
    status: RequestStatus
    location: Optional[Coordinate] = None
    address: Optional[str] = None
    acceptor: Optional[Actor] = None
    accepted_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    last_cancel_reason: Optional[str] = None
    last_cancelled_by_name: Optional[str] = None
    created_at: Optional[datetime] = None

    def involves(self, actor: Actor) -> bool:
        return actor == self.requester or actor == self.acceptor


@dataclass(frozen=True, slots=True)
class BloodRequestDraft:
    requester: Actor
    blood_group: BloodGroup
    units_needed: int = 1
    location: Optional[Coordinate] = None
    address: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DispatchRecord:
    """One row of "who was told about which request"."""
    id: int
    request_id: int
    recipient: Actor
    address: str
    status: DispatchStatus
    error: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


@dataclass(slots=True)
class DispatchReceipt:
    request: BloodRequest
    recipients: List[Actor] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    delivery: Optional[asyncio.Task] = None

    @property
    def alerts_sent(self) -> int:
        return len(self.recipients)


@dataclass(frozen=True, slots=True)
class RequestAlert:
    request: BloodRequest
    distance_km: float


@dataclass(frozen=True, slots=True)
class ActivityHistory:
    """An actor's donations and the requests they raised, each newest first."""
    donations: List[Donation]
    requests: List[BloodRequest]
