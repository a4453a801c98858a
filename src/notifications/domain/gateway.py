"""
Notification gateway contract.

The core hands a recipient list and one payload to the gateway; transport
(push, email, webhook) is the adapter's business. Each recipient is attempted
once and gets exactly one outcome back. Adapters report failures as outcomes
instead of raising.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.shared.domain.actor import Actor


@dataclass(frozen=True, slots=True)
class Recipient:
    actor: Actor
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def address(self) -> str:
        """Per-actor channel, e.g. `user-12`."""
        return self.actor.room


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    event: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    recipient: Actor
    delivered: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls, recipient: Actor) -> "DeliveryOutcome":
        return cls(recipient=recipient, delivered=True)

    @classmethod
    def failed(cls, recipient: Actor, error: str) -> "DeliveryOutcome":
        return cls(recipient=recipient, delivered=False, error=error)


class NotificationGateway(ABC):

    @abstractmethod
    async def notify(self, recipients: List[Recipient], payload: NotificationPayload) -> List[DeliveryOutcome]:
        """One outcome per recipient, in recipient order."""

    async def aclose(self) -> None:
        return None
