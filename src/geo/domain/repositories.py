from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from src.geo.domain.entities import GeoMatch, ResponderProfile
from src.geo.domain.value_objects import Coordinate
from src.shared.domain.actor import Actor, ActorKind
from src.shared.domain.blood_group import BloodGroup


class GeoIndex(ABC):
    """
    Read-only radius queries over verified, active responders.
    """

    @abstractmethod
    async def find_within(
        self,
        center: Coordinate,
        radius_km: float,
        kind: ActorKind,
        *,
        blood_group: Optional[BloodGroup] = None,
        exclude: Optional[Actor] = None,
    ) -> List[GeoMatch]:
        """
        Entities of `kind` within `radius_km` of `center`, nearest first, ties by id.
        `blood_group` narrows users to compatible donors and banks to those
        holding stock of that group; NGOs ignore it.
        """


class Geocoder(ABC):

    @abstractmethod
    async def geocode(self, address: str) -> Optional[Coordinate]:
        """Resolve a free-text address; None when it cannot be resolved."""


class ResponderDirectory(ABC):

    @abstractmethod
    async def profile(self, actor: Actor) -> Optional[ResponderProfile]:
        """Registry row for `actor`, or None when it does not exist."""
