from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.dependencies import get_current_actor, get_geo_index
from src.geo.api.schemas import NearbyEntityResponse
from src.geo.domain.repositories import GeoIndex
from src.geo.domain.value_objects import Coordinate
from src.shared.domain.actor import Actor, ActorKind
from src.shared.domain.blood_group import BloodGroup
from src.shared.exceptions import ForbiddenError, ValidationError

router = APIRouter(prefix="/api/v1/geo", tags=["geo"])


@router.get("/nearby", response_model=list[NearbyEntityResponse])
async def nearby(
    lat: float,
    lng: float,
    kind: ActorKind = Query(default=ActorKind.BLOOD_BANK),
    radius_km: float = Query(default=35.0),
    blood_group: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    geo: GeoIndex = Depends(get_geo_index),
):
    if kind is ActorKind.USER:
        raise ForbiddenError("Donors are reached through blood requests, not listed", details={"kind": kind.value})
    group = None
    if blood_group:
        try:
            group = BloodGroup.parse(blood_group)
        except ValueError as e:
            raise ValidationError(str(e), details={"blood_group": blood_group}) from e
    matches = await geo.find_within(Coordinate(lat, lng), radius_km, kind, blood_group=group, exclude=actor)
    return [
        NearbyEntityResponse(
            kind=m.entity.kind.value,
            id=m.entity.id,
            name=m.entity.name,
            latitude=m.entity.location.lat,
            longitude=m.entity.location.lng,
            distance_km=round(m.distance_km, 2),
            address=m.entity.address,
            blood_group=m.entity.blood_group.value if m.entity.blood_group else None,
        )
        for m in matches
    ]
