from __future__ import annotations

from datetime import timedelta
from typing import Any, List, Optional

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.geo.domain.entities import GeoEntity, GeoMatch
from src.geo.domain.repositories import GeoIndex
from src.geo.domain.value_objects import Coordinate, bounding_box, distance_km
from src.geo.infrastructure.models import BloodBankModel, NgoModel, UserModel
from src.inventory.infrastructure.models import BloodStockModel, DonationModel
from src.shared.domain.actor import Actor, ActorKind
from src.shared.domain.blood_group import BloodGroup
from src.shared.domain.clock import utcnow
from src.shared.exceptions import InvalidCoordinate
from src.shared.logging import get_logger

logger = get_logger(__name__)

REGISTRY_MODELS = {
    ActorKind.USER: UserModel,
    ActorKind.NGO: NgoModel,
    ActorKind.BLOOD_BANK: BloodBankModel,
}


class SQLAlchemyGeoIndex(GeoIndex):
    """
    Bounding box in SQL, exact great-circle distance in Python.

    The box only discards rows that cannot possibly be inside the circle;
    inclusion is decided by `distance_km(center, row) <= radius_km`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        donation_cooldown_days: int = 0,
    ) -> None:
        self._sessions = session_factory
        self._cooldown_days = donation_cooldown_days

    async def find_within(
        self,
        center: Coordinate,
        radius_km: float,
        kind: ActorKind,
        *,
        blood_group: Optional[BloodGroup] = None,
        exclude: Optional[Actor] = None,
    ) -> List[GeoMatch]:
        if radius_km is None or radius_km < 0:
            raise InvalidCoordinate("radius_km must be >= 0", details={"radius_km": radius_km})
        kind = ActorKind(kind)
        model = REGISTRY_MODELS[kind]

        stmt = select(model).where(
            model.is_verified.is_(True),
            model.status == "active",
            model.latitude.is_not(None),
            model.longitude.is_not(None),
        )
        min_lat, max_lat, min_lng, max_lng = bounding_box(center, radius_km)
        stmt = stmt.where(model.latitude.between(min_lat, max_lat))
        if min_lng is not None:
            stmt = stmt.where(model.longitude.between(min_lng, max_lng))
        if exclude is not None and exclude.kind is kind:
            stmt = stmt.where(model.id != exclude.id)
        stmt = self._narrow(stmt, kind, blood_group)

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()

        matches: List[GeoMatch] = []
        for row in rows:
            try:
                location = Coordinate(row.latitude, row.longitude)
            except InvalidCoordinate:
                logger.warning("geo_record_bad_coordinate", kind=kind.value, id=row.id)
                continue
            d = distance_km(center, location)
            if d <= radius_km:
                matches.append(GeoMatch(entity=_to_entity(kind, row, location), distance_km=d))
        matches.sort(key=lambda m: (m.distance_km, m.entity.id))

        logger.debug(
            "geo_find_within",
            kind=kind.value,
            radius_km=radius_km,
            blood_group=blood_group.value if blood_group else None,
            prefiltered=len(rows),
            matched=len(matches),
        )
        return matches

    def _narrow(self, stmt: Any, kind: ActorKind, blood_group: Optional[BloodGroup]) -> Any:
        if kind is ActorKind.USER:
            if blood_group is not None:
                stmt = stmt.where(UserModel.blood_group.in_([g.value for g in blood_group.donors()]))
            if self._cooldown_days > 0:
                cutoff = utcnow() - timedelta(days=self._cooldown_days)
                recent = exists().where(
                    and_(
                        DonationModel.donor_type == ActorKind.USER.value,
                        DonationModel.donor_id == UserModel.id,
                        DonationModel.donated_at >= cutoff,
                    )
                )
                stmt = stmt.where(~recent)
        elif kind is ActorKind.BLOOD_BANK and blood_group is not None:
            stocked = exists().where(
                and_(
                    BloodStockModel.blood_bank_id == BloodBankModel.id,
                    BloodStockModel.blood_group == blood_group.value,
                    BloodStockModel.units_available > 0,
                )
            )
            stmt = stmt.where(stocked)
        return stmt


def _to_entity(kind: ActorKind, row: Any, location: Coordinate) -> GeoEntity:
    if kind is ActorKind.USER:
        return GeoEntity(
            kind=kind,
            id=row.id,
            name=row.name,
            location=location,
            email=row.email,
            phone=row.phone,
            address=row.address,
            blood_group=parse_stored_group(row.blood_group),
        )
    if kind is ActorKind.BLOOD_BANK:
        return GeoEntity(
            kind=kind,
            id=row.id,
            name=row.name,
            location=location,
            email=row.email,
            phone=row.contact_info,
            address=row.address,
        )
    return GeoEntity(kind=kind, id=row.id, name=row.name, location=location, email=row.email, address=row.address)


def parse_stored_group(value: Optional[str]) -> Optional[BloodGroup]:
    if not value:
        return None
    try:
        return BloodGroup.parse(value)
    except ValueError:
        return None
