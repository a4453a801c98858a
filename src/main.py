from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.dependencies import get_database, get_notification_gateway
from src.shared.api.middleware import CorrelationIdMiddleware
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.logging import get_logger, setup_logging

from src.dispatch.api.routes import router as blood_requests_router
from src.geo.api.routes import router as geo_router
from src.inventory.api.routes import router as inventory_router
from src.scheduling.api.routes import router as appointments_router
from src.shared.health import router as health_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_started", environment=get_settings().ENVIRONMENT)
    yield
    dispatcher = getattr(app.state, "request_dispatcher", None)
    if dispatcher is not None:
        await dispatcher.aclose()
    await get_notification_gateway().aclose()
    await get_database().dispose()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging()

    app = FastAPI(
        title="BloodLink Dispatch Engine API",
        version=settings.PROJECT_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # X-Request-ID → logging context + request.state.request_id
    app.add_middleware(CorrelationIdMiddleware)

    # Routers
    app.include_router(blood_requests_router)
    app.include_router(geo_router)
    app.include_router(appointments_router)
    app.include_router(inventory_router)
    app.include_router(health_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": "BloodLink Dispatch Engine API",
            "docs": "/docs",
            "health": "/_health/db",
        }

    return app


app = create_app()
