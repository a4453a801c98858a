from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.geo.domain.value_objects import Coordinate
from src.shared.domain.actor import Actor, ActorKind
from src.shared.domain.blood_group import BloodGroup


@dataclass(frozen=True, slots=True)
class GeoEntity:
    """A geotagged responder: donor (user), NGO or blood bank."""
    kind: ActorKind
    id: int
    name: str
    location: Coordinate
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    blood_group: Optional[BloodGroup] = None

    @property
    def actor(self) -> Actor:
        return Actor(self.kind, self.id)


@dataclass(frozen=True, slots=True)
class GeoMatch:
    entity: GeoEntity
    distance_km: float


@dataclass(frozen=True, slots=True)
class ResponderProfile:
    """Registry snapshot of any actor, located or not."""
    actor: Actor
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    blood_group: Optional[BloodGroup] = None
    location: Optional[Coordinate] = None
