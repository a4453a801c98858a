"""
Actor value object.

Requesters, acceptors, donors and notification recipients all share one
tagged identity: the kind of account plus its id in that kind's table.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorKind(str, Enum):
    """Mirrors the `*_type` columns (`requester_type`, `accepted_by_type`, `donor_type`)."""
    USER = "user"
    NGO = "ngo"
    BLOOD_BANK = "blood_bank"


@dataclass(frozen=True, slots=True, order=True)
class Actor:
    kind: ActorKind
    id: int

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ActorKind):
            object.__setattr__(self, "kind", ActorKind(self.kind))
        if self.id <= 0:
            raise ValueError("Actor id must be positive")

    @classmethod
    def of(cls, kind: str, id: int) -> "Actor":
        return cls(ActorKind(kind), int(id))

    @property
    def room(self) -> str:
        """Per-actor channel name, e.g. `blood_bank-7`."""
        return f"{self.kind.value}-{self.id}"

    @property
    def is_blood_bank(self) -> bool:
        return self.kind is ActorKind.BLOOD_BANK

    def __str__(self) -> str:
        return self.room
