from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from src.dispatch.domain.entities import (
    BloodRequest,
    BloodRequestDraft,
    DispatchRecord,
    DispatchStatus,
)
from src.geo.domain.value_objects import Bounds
from src.shared.domain.actor import Actor


class BloodRequestRepository(ABC):

    @abstractmethod
    async def add(self, draft: BloodRequestDraft) -> BloodRequest:
        ...

    @abstractmethod
    async def get(self, request_id: int) -> Optional[BloodRequest]:
        ...

    @abstractmethod
    async def accept(self, request_id: int, acceptor: Actor) -> Optional[BloodRequest]:
        """active → accepted in one guarded UPDATE; None when the guard fails."""

    @abstractmethod
    async def fulfill(self, request_id: int, acceptor: Actor) -> Optional[BloodRequest]:
        """accepted → fulfilled, only for the recorded acceptor; None when the guard fails."""

    @abstractmethod
    async def cancel(
        self,
        request_id: int,
        reason: Optional[str],
        cancelled_by_name: Optional[str],
        *,
        actor: Optional[Actor] = None,
    ) -> Optional[BloodRequest]:
        """active|accepted → cancelled, restricted to requester/acceptor when `actor` is given; None when the guard fails."""

    @abstractmethod
    async def list_for_requester(self, requester: Actor) -> List[BloodRequest]:
        ...

    @abstractmethod
    async def list_active_located(self, bounds: Optional[Bounds] = None) -> List[BloodRequest]:
        ...


class RequestDispatchRepository(ABC):
    """Ledger of notified recipients; at most one row per (request, recipient)."""

    @abstractmethod
    async def claim(self, request_id: int, recipients: Sequence[Actor]) -> List[Actor]:
        """Insert pending rows; return only the recipients whose row was new."""

    @abstractmethod
    async def mark(self, request_id: int, recipient: Actor, status: DispatchStatus, error: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def list_for_request(self, request_id: int) -> List[DispatchRecord]:
        ...


class IdempotencyKeyRepository(ABC):

    @abstractmethod
    async def claim(self, requester: Actor, key: str, request_id: int) -> Optional[int]:
        """Map the requester's `key` to `request_id`; if taken, the request id it already maps to."""

    @abstractmethod
    async def lookup(self, requester: Actor, key: str) -> Optional[int]:
        ...
