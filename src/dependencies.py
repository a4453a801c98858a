# src/dependencies.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings
from src.dispatch.application.services.request_dispatcher import RequestDispatcher
from src.geo.domain.repositories import GeoIndex, Geocoder, ResponderDirectory
from src.geo.infrastructure.directory import SQLAlchemyResponderDirectory
from src.geo.infrastructure.geo_index import SQLAlchemyGeoIndex
from src.geo.infrastructure.geocoder import GeopyGeocoder
from src.inventory.application.services.stock_ledger import StockLedger
from src.notifications.domain.gateway import NotificationGateway
from src.notifications.infrastructure.logging_gateway import LoggingNotificationGateway
from src.notifications.infrastructure.webhook_gateway import WebhookNotificationGateway
from src.scheduling.application.services.slot_allocator import SlotAllocator
from src.shared.domain.actor import Actor, ActorKind
from src.shared.exceptions import ForbiddenError, UnauthorizedError
from src.shared.infrastructure.database.session import DatabaseSessionFactory
from src.shared.logging import bind_request_context


# --- DB engine / session factory ---
@lru_cache(maxsize=1)
def get_database() -> DatabaseSessionFactory:
    settings = get_settings()
    return DatabaseSessionFactory(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_database().session_factory


# --- Collaborators (process-wide) ---
@lru_cache(maxsize=1)
def get_notification_gateway() -> NotificationGateway:
    settings = get_settings()
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotificationGateway(settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return LoggingNotificationGateway()


@lru_cache(maxsize=1)
def get_geocoder() -> Geocoder:
    settings = get_settings()
    return GeopyGeocoder(
        user_agent=settings.GEOCODER_USER_AGENT,
        timeout=settings.GEOCODER_TIMEOUT_SECONDS,
        google_api_key=settings.GOOGLE_MAPS_API_KEY,
    )


# --- Services ---
def get_geo_index(sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory)) -> GeoIndex:
    return SQLAlchemyGeoIndex(sessions, donation_cooldown_days=get_settings().DONATION_COOLDOWN_DAYS)


def get_responder_directory(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ResponderDirectory:
    return SQLAlchemyResponderDirectory(sessions)


def get_stock_ledger(sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory)) -> StockLedger:
    return StockLedger(sessions)


def get_slot_allocator(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: NotificationGateway = Depends(get_notification_gateway),
    directory: ResponderDirectory = Depends(get_responder_directory),
) -> SlotAllocator:
    settings = get_settings()
    return SlotAllocator(
        sessions,
        gateway=gateway,
        directory=directory,
        max_materialize_days=settings.MAX_MATERIALIZE_DAYS,
        default_capacity=settings.DEFAULT_SLOT_CAPACITY,
    )


def get_request_dispatcher(
    request: Request,
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    geo_index: GeoIndex = Depends(get_geo_index),
    gateway: NotificationGateway = Depends(get_notification_gateway),
    directory: ResponderDirectory = Depends(get_responder_directory),
    geocoder: Geocoder = Depends(get_geocoder),
    ledger: StockLedger = Depends(get_stock_ledger),
) -> RequestDispatcher:
    """
    One dispatcher per app: it owns the background delivery tasks that the
    lifespan drains on shutdown.
    """
    dispatcher = getattr(request.app.state, "request_dispatcher", None)
    if dispatcher is None:
        dispatcher = RequestDispatcher(
            sessions,
            geo_index=geo_index,
            gateway=gateway,
            directory=directory,
            geocoder=geocoder,
            stock_ledger=ledger,
            radius_km=get_settings().DISPATCH_RADIUS_KM,
        )
        request.app.state.request_dispatcher = dispatcher
    return dispatcher


# --- Current actor & guards ---
async def get_current_actor_optional(
    x_actor_type: Optional[str] = Header(default=None, alias="X-Actor-Type"),
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
) -> Optional[Actor]:
    if x_actor_type is None and x_actor_id is None:
        return None
    try:
        actor = Actor.of(x_actor_type.strip().lower(), int(x_actor_id))
    except (AttributeError, TypeError, ValueError) as e:
        raise UnauthorizedError(
            "X-Actor-Type must be user, ngo or blood_bank and X-Actor-Id a positive integer",
            details={"actor_type": x_actor_type, "actor_id": x_actor_id},
        ) from e
    bind_request_context(actor=actor.room)
    return actor


async def get_current_actor(actor: Optional[Actor] = Depends(get_current_actor_optional)) -> Actor:
    if actor is None:
        raise UnauthorizedError("X-Actor-Type and X-Actor-Id headers are required")
    return actor


def require_kind(actor: Actor, kind: ActorKind) -> None:
    if actor.kind is not kind:
        raise ForbiddenError(
            f"Only a {kind.value} can perform this action",
            details={"actor_type": actor.kind.value},
        )


def require_bank(actor: Actor, bank_id: int) -> None:
    if not (actor.is_blood_bank and actor.id == bank_id):
        raise ForbiddenError("You can only manage your own blood bank", details={"blood_bank_id": bank_id})
