from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.geo.domain.entities import ResponderProfile
from src.geo.domain.repositories import ResponderDirectory
from src.geo.domain.value_objects import Coordinate
from src.geo.infrastructure.geo_index import REGISTRY_MODELS, parse_stored_group
from src.shared.domain.actor import Actor, ActorKind
from src.shared.exceptions import InvalidCoordinate


class SQLAlchemyResponderDirectory(ResponderDirectory):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def profile(self, actor: Actor) -> Optional[ResponderProfile]:
        async with self._sessions() as session:
            row = await session.get(REGISTRY_MODELS[actor.kind], actor.id)
        if row is None:
            return None
        try:
            location = Coordinate.maybe(row.latitude, row.longitude)
        except InvalidCoordinate:
            location = None
        phone = row.phone if actor.kind is ActorKind.USER else getattr(row, "contact_info", None)
        return ResponderProfile(
            actor=actor,
            name=row.name,
            email=row.email,
            phone=phone,
            address=row.address,
            blood_group=parse_stored_group(getattr(row, "blood_group", None)),
            location=location,
        )
