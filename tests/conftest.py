import socket
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from alembic.config import main as migrate
from httpx import ASGITransport, AsyncClient

from geostore_api import application
from geostore_api.application import DatabaseStatus, connect_engines, db
from geostore_api.routes import coverage_dependency, geostore_service_dependency
from geostore_api.settings.globals import WRITER_HOST, WRITER_PORT
from geostore_api.utils.coverage import CoverageIntersector
from geostore_api.utils.geostore import GeostoreService
from geostore_api.utils.upstream import UpstreamFetcher
from tests.fixtures import MONACO
from tests.utils import (
    FakeAliasTable,
    FakeCartoClient,
    FakeGeometryStore,
    echo_repair,
    geometry_rows,
)


@pytest.fixture
def carto_client() -> FakeCartoClient:
    """CARTO double that knows Monaco and repairs by echoing."""
    return FakeCartoClient(
        {
            "ST_CollectionExtract": echo_repair(),
            "gid_0 = 'MCO'": geometry_rows(MONACO, 200.5, name="Monaco"),
        }
    )


@pytest.fixture
def store() -> FakeGeometryStore:
    return FakeGeometryStore()


@pytest.fixture
def aliases() -> FakeAliasTable:
    return FakeAliasTable()


@pytest.fixture
def service(carto_client, store, aliases) -> GeostoreService:
    return GeostoreService(store, aliases, UpstreamFetcher(carto_client))


@pytest.fixture
def coverage(carto_client, service) -> CoverageIntersector:
    return CoverageIntersector(carto_client, service)


@pytest_asyncio.fixture
async def async_client(service, coverage) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to in-memory doubles."""
    from geostore_api.main import app

    app.dependency_overrides[geostore_service_dependency] = lambda: service
    app.dependency_overrides[coverage_dependency] = lambda: coverage

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test", trust_env=False
    ) as client:
        yield client

    app.dependency_overrides = {}


@pytest.fixture(scope="session")
def postgres_available() -> None:
    """Skip database backed tests when no PostgreSQL server is listening."""
    try:
        with socket.create_connection((WRITER_HOST, WRITER_PORT), timeout=1):
            pass
    except OSError:
        pytest.skip(f"PostgreSQL not reachable at {WRITER_HOST}:{WRITER_PORT}")


@pytest_asyncio.fixture
async def database(postgres_available) -> AsyncGenerator[None, None]:
    """In between tests, tear down/set up the schema and connection pools."""
    migrate(["--raiseerr", "upgrade", "head"])
    status = await connect_engines(budget=5.0, initial_backoff=0.1)
    assert status == DatabaseStatus.ready
    db.bind = application.READ_ENGINE

    yield

    db.bind = None
    await application.WRITE_ENGINE.close()
    await application.READ_ENGINE.close()
    application.WRITE_ENGINE = None
    application.READ_ENGINE = None
    application.DB_STATUS = DatabaseStatus.connecting
    migrate(["--raiseerr", "downgrade", "base"])
