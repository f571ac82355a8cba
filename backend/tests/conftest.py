"""Pytest configuration and fixtures."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import NullPool

from api.sync import get_sync_service
from database import build_engine, create_tables, get_db, get_session_local
from main import app
from services.harvest_connector import HarvestConnector
from services.sync_service import HarvestSyncService
from tests.fixtures import make_raw_entry, seed_reference_data
from tests.fixtures.mocks import FakeHarvestAPI, RecordingSleep


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    """File-backed SQLite database with all tables created.

    NullPool gives every ``asyncio.run`` (and the resolver's concurrent
    lookups) its own connection.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    asyncio.run(create_tables(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture(name="seeded_engine")
def seeded_engine_fixture(engine):
    """Database holding the reference rows from ``tests.fixtures``."""
    asyncio.run(seed_reference_data(engine))
    return engine


@pytest.fixture(name="sleep")
def sleep_fixture():
    return RecordingSleep()


@pytest.fixture(name="harvest_api")
def harvest_api_fixture():
    """Two pages of entries: three known references and one unknown client."""
    return FakeHarvestAPI(
        pages=[
            [make_raw_entry(1), make_raw_entry(2, client=102, user=402)],
            [make_raw_entry(3, client=999, nested=False)],
        ]
    )


@pytest.fixture(name="connector")
def connector_fixture(seeded_engine, harvest_api, sleep):
    return HarvestConnector(
        seeded_engine,
        harvest_api.client(sleep=sleep),
        cache_max_size=100,
        cache_ttl_ms=60_000,
        memory_probe=lambda: 0.0,
    )


@pytest.fixture(name="sync_service")
def sync_service_fixture(seeded_engine, connector):
    return HarvestSyncService(seeded_engine, connector=connector)


@pytest.fixture(name="client")
def client_fixture(seeded_engine, sync_service):
    """Create a test client wired to the test database and sync service."""
    SessionLocal = get_session_local(seeded_engine)

    async def override_get_db():
        async with SessionLocal() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
