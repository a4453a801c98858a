from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from src.geo.domain.repositories import Geocoder
from src.geo.domain.value_objects import Coordinate
from src.geo.infrastructure.models import BloodBankModel, NgoModel, UserModel
from src.notifications.domain.gateway import (
    DeliveryOutcome,
    NotificationGateway,
    NotificationPayload,
    Recipient,
)
from src.shared.domain.actor import Actor

# Bangalore city centre; 0.01° of latitude is ~1.11 km
CENTER = Coordinate(12.9716, 77.5946)


def near(dlat: float, dlng: float = 0.0) -> Coordinate:
    return Coordinate(CENTER.lat + dlat, CENTER.lng + dlng)


def actor_headers(actor: Actor) -> Dict[str, str]:
    return {"X-Actor-Type": actor.kind.value, "X-Actor-Id": str(actor.id)}


class RecordingGateway(NotificationGateway):
    """Collects every notify() call; fails the actors listed in `fail_for`."""

    def __init__(self, fail_for: Optional[Set[Actor]] = None, explode: bool = False) -> None:
        self.calls: List[Tuple[List[Recipient], NotificationPayload]] = []
        self.fail_for = fail_for or set()
        self.explode = explode

    async def notify(self, recipients, payload):
        self.calls.append((list(recipients), payload))
        if self.explode:
            raise RuntimeError("gateway down")
        return [
            DeliveryOutcome.failed(r.actor, "unreachable") if r.actor in self.fail_for else DeliveryOutcome.ok(r.actor)
            for r in recipients
        ]

    def notified(self, event: str) -> List[Actor]:
        return [r.actor for recipients, payload in self.calls if payload.event == event for r in recipients]


@dataclass
class StaticGeocoder(Geocoder):
    known: Dict[str, Coordinate] = field(default_factory=dict)

    async def geocode(self, address):
        return self.known.get(address)


class Seeder:
    def __init__(self, sessions) -> None:
        self._sessions = sessions
        self._n = 0

    async def _add(self, row) -> int:
        async with self._sessions() as s:
            s.add(row)
            await s.commit()
            return row.id

    def _email(self, prefix: str) -> str:
        self._n += 1
        return f"{prefix}{self._n}@example.org"

    async def user(
        self,
        *,
        at: Optional[Coordinate] = CENTER,
        blood_group: Optional[str] = "O+",
        name: str = "Donor",
        verified: bool = True,
        status: str = "active",
        phone: Optional[str] = "+919800000000",
    ) -> Actor:
        uid = await self._add(
            UserModel(
                name=name,
                email=self._email("user"),
                phone=phone,
                blood_group=blood_group,
                latitude=at.lat if at else None,
                longitude=at.lng if at else None,
                is_verified=verified,
                status=status,
            )
        )
        return Actor.of("user", uid)

    async def ngo(self, *, at: Optional[Coordinate] = CENTER, name: str = "Helping Hands") -> Actor:
        nid = await self._add(
            NgoModel(
                name=name,
                email=self._email("ngo"),
                latitude=at.lat if at else None,
                longitude=at.lng if at else None,
                is_verified=True,
                status="active",
            )
        )
        return Actor.of("ngo", nid)

    async def bank(
        self,
        *,
        at: Optional[Coordinate] = CENTER,
        name: str = "City Blood Bank",
        verified: bool = True,
    ) -> Actor:
        bid = await self._add(
            BloodBankModel(
                name=name,
                email=self._email("bank"),
                contact_info="080-2222",
                address="MG Road, Bengaluru",
                latitude=at.lat if at else None,
                longitude=at.lng if at else None,
                is_verified=verified,
                status="active",
            )
        )
        return Actor.of("blood_bank", bid)
