import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
from httpx import ASGITransport, AsyncClient

import src.models  # noqa: F401  (registers every table on Base.metadata)
from src.dependencies import get_geocoder, get_notification_gateway, get_session_factory
from src.dispatch.application.services.request_dispatcher import RequestDispatcher
from src.geo.infrastructure.directory import SQLAlchemyResponderDirectory
from src.geo.infrastructure.geo_index import SQLAlchemyGeoIndex
from src.inventory.application.services.stock_ledger import StockLedger
from src.scheduling.application.services.slot_allocator import SlotAllocator
from src.shared.infrastructure.database.base_model import Base
from src.shared.infrastructure.database.session import DatabaseSessionFactory
from tests.helpers import CENTER, RecordingGateway, Seeder, StaticGeocoder


@pytest.fixture
async def database(tmp_path):
    db = DatabaseSessionFactory(f"sqlite+aiosqlite:///{tmp_path / 'bloodlink.db'}")
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db
    await db.dispose()


@pytest.fixture
def sessions(database):
    return database.session_factory


@pytest.fixture
def seed(sessions):
    return Seeder(sessions)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def geocoder():
    return StaticGeocoder({"MG Road, Bengaluru": CENTER})


@pytest.fixture
def directory(sessions):
    return SQLAlchemyResponderDirectory(sessions)


@pytest.fixture
def geo_index(sessions):
    return SQLAlchemyGeoIndex(sessions)


@pytest.fixture
def ledger(sessions):
    return StockLedger(sessions)


@pytest.fixture
def allocator(sessions, gateway, directory):
    return SlotAllocator(sessions, gateway=gateway, directory=directory, max_materialize_days=31)


@pytest.fixture
async def dispatcher(sessions, geo_index, gateway, directory, geocoder, ledger):
    d = RequestDispatcher(
        sessions,
        geo_index=geo_index,
        gateway=gateway,
        directory=directory,
        geocoder=geocoder,
        stock_ledger=ledger,
        radius_km=35.0,
    )
    yield d
    await d.aclose()


@pytest.fixture
async def app_client(sessions, gateway, geocoder):
    from src.main import app

    app.dependency_overrides[get_session_factory] = lambda: sessions
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    dispatcher = getattr(app.state, "request_dispatcher", None)
    if dispatcher is not None:
        await dispatcher.aclose()
        app.state.request_dispatcher = None
    app.dependency_overrides.clear()
