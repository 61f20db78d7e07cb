"""Test configuration and fixtures.

Tests run against a file-based SQLite database (``./test.db``) whose schema is
dropped and recreated once per session from the model metadata. Every table is
emptied after each test so allocation tests always start from counter 0.

Environment Variables:
    TESTING=true                  -> test database URLs (see src.config.database)
    FAST_TESTS=1                  -> skip observability setup and DB checks in lifespan
    TRACKING_ID_BACKEND=database  -> exercise the durable allocator through the API
"""

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import delete

# Flag test mode early
os.environ.setdefault("TESTING", "true")
# Enable fast test path (skip heavy observability)
os.environ.setdefault("FAST_TESTS", "1")
os.environ.setdefault("TRACKING_ID_BACKEND", "database")

# --- Ensure backend root on sys.path BEFORE importing src.* ---
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from src.config.database import (  # noqa: E402
    AsyncSessionLocal,
    SessionLocal,
    create_database_tables,
    drop_database_tables,
)
from src.models.database import Base, MenuItem  # noqa: E402
from src.services.tracking_id import get_tracking_id_generator  # noqa: E402
from src.main import app  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db():  # noqa: D401
    """Drop/create metadata once per test session."""
    drop_database_tables()
    create_database_tables()
    yield


@pytest.fixture(autouse=True)
def _isolation():  # noqa: D401
    """Per-test cleanup: empty every table and reset app-level overrides."""
    yield
    app.dependency_overrides.clear()
    get_tracking_id_generator.cache_clear()
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(delete(table))
        session.commit()


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:  # noqa: D401
    """Async HTTP client for tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def db_session():  # noqa: D401
    """Async session from the application's session factory."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def menu_item_id(db_session) -> str:  # noqa: D401
    """Create an available menu item and return its id."""
    item = MenuItem(
        name="Masala Dosa",
        description="Rice crepe with spiced potato filling",
        category="Mains",
        price=Decimal("8.50"),
        image="",
        dietary=["vegetarian"],
        price_range_label="$",
    )
    db_session.add(item)
    await db_session.commit()
    return str(item.id)


@pytest.fixture
def sample_order_payload():
    """Build a representative checkout payload for a menu item id."""
    def _build(menu_item_id: str, quantity: int = 2, **overrides):
        payload = {
            "customerName": "Priya Raman",
            "customerEmail": "priya@example.com",
            "customerPhone": "+44 7700 900123",
            "deliveryAddress": "12 Curry Lane, Leicester LE1 1AA",
            "items": [{"menuItemId": menu_item_id, "quantity": quantity}],
        }
        payload.update(overrides)
        return payload
    return _build


def pytest_configure(config):  # noqa: D401
    """Register custom markers."""
    markers = [
        ("contract", "mark test as a contract test"),
        ("integration", "mark test as an integration test"),
        ("unit", "mark test as a unit test"),
        ("slow", "mark test as slow running"),
        ("smoke", "mark test as a smoke test"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")
