"""Shared fixtures for the search backend tests.

No live PostgreSQL or Redis is needed: executors get a mocked session
factory and the cache layer gets a mocked ``redis.asyncio`` client.
"""

import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://plc:plc@db:5432/plc_inventory_test")
os.environ.setdefault("REDIS_URL", "")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


def make_item(plc_id: str, score: float = 0.5, **overrides):
    """Build a SearchResultItem with plausible hierarchy values."""
    from app.search.schemas import SearchResultItem

    values = {
        "plc_id": plc_id,
        "tag_id": f"PLC-{plc_id}",
        "plc_description": f"Controller {plc_id}",
        "make": "Siemens",
        "model": "S7-1500",
        "equipment_id": f"eq-{plc_id}",
        "equipment_name": "Press 1",
        "equipment_type": "press",
        "cell_id": "cell-1",
        "cell_name": "Line A",
        "line_number": "1",
        "site_id": "site-1",
        "site_name": "Plant North",
        "hierarchy_path": f"Plant North > Line A > Press 1 > PLC-{plc_id}",
        "relevance_score": score,
    }
    values.update(overrides)
    return SearchResultItem(**values)


def make_row(plc_id: str, score: float, highlighted_fields=None, **overrides):
    """Build a mock view row (attribute access, like a SQLAlchemy Row)."""
    row = MagicMock()
    row.plc_id = plc_id
    row.tag_id = f"PLC-{plc_id}"
    row.plc_description = f"Controller {plc_id}"
    row.make = "Siemens"
    row.model = "S7-1500"
    row.ip_address = "10.0.0.1"
    row.firmware_version = None
    row.equipment_id = f"eq-{plc_id}"
    row.equipment_name = "Press 1"
    row.equipment_type = "press"
    row.cell_id = "cell-1"
    row.cell_name = "Line A"
    row.line_number = 1
    row.site_id = "site-1"
    row.site_name = "Plant North"
    row.hierarchy_path = f"Plant North > Line A > Press 1 > PLC-{plc_id}"
    row.tags_text = "START_PB Start pushbutton"
    row.relevance_score = score
    row.highlighted_fields = highlighted_fields
    for name, value in overrides.items():
        setattr(row, name, value)
    return row


def make_session_factory(rows: list | None = None, side_effect=None):
    """Build a mock async_sessionmaker whose sessions return ``rows``.

    Returns ``(factory, session)`` so tests can inspect executed statements.
    The first ``execute`` call of a search is the ``SET LOCAL`` timeout.
    """
    session = AsyncMock()
    result_mock = MagicMock()
    result_mock.fetchall.return_value = rows if rows is not None else []
    if side_effect is not None:
        session.execute = AsyncMock(side_effect=side_effect)
    else:
        session.execute = AsyncMock(return_value=result_mock)

    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory, session


@pytest.fixture
def redis_client():
    """A mocked redis.asyncio client that answers PING."""
    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock(return_value=True)
    client.mget = AsyncMock(return_value=[])
    client.aclose = AsyncMock()
    return client


@pytest_asyncio.fixture
async def connected_cache(redis_client):
    """A CacheLayer already in the Connected state over ``redis_client``."""
    from app.search.cache import CacheLayer

    cache = CacheLayer(client=redis_client)
    await cache.connect()
    return cache


@pytest.fixture
def disconnected_cache():
    """A CacheLayer with no backend configured (stays Disconnected)."""
    from app.search.cache import CacheLayer

    return CacheLayer(None)


@pytest_asyncio.fixture(scope="function")
async def test_app():
    """Provide the FastAPI app; tests override ``get_search_service``."""
    from app.main import app

    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the app (lifespan not run)."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
