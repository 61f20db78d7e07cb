"""Order creation when allocation or notification misbehaves."""
import asyncio
from typing import Optional

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from src.config.settings import get_settings
from src.main import app
from src.services.notifications import BaseNotifier, NotificationResult, get_notifier
from src.services.tracking_id import MemoryTrackingIdGenerator, TrackingIdGenerator, get_tracking_id_generator
from src.utils.errors import StorageUnavailable


class _UnavailableGenerator(TrackingIdGenerator):
    backend = "database"

    async def generate(self, db=None) -> str:
        raise StorageUnavailable(details={"date": self.date_key()})

    async def peek(self, date_key: Optional[str] = None) -> int:
        raise StorageUnavailable()


class _StalledGenerator(TrackingIdGenerator):
    backend = "database"

    async def generate(self, db=None) -> str:
        await asyncio.sleep(5)
        return "SK-20251031-0001"

    async def peek(self, date_key: Optional[str] = None) -> int:
        return 0


class _BrokenNotifier(BaseNotifier):
    @property
    def provider_name(self) -> str:
        return "broken"

    async def send_order_confirmation(self, order) -> NotificationResult:
        raise ConnectionError("smtp down")


async def _order_count(client: AsyncClient) -> int:
    r = await client.get("/api/v1/orders")
    assert r.status_code == 200, r.text
    return len(r.json()["data"])


@pytest.mark.asyncio
@pytest.mark.integration
async def test_storage_unavailable_returns_503_and_creates_nothing(
        async_client: AsyncClient, menu_item_id, sample_order_payload):
    app.dependency_overrides[get_tracking_id_generator] = lambda: _UnavailableGenerator()

    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))

    assert r.status_code == 503, r.text
    body = r.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "STORAGE_UNAVAILABLE"
    assert body["error"]["details"]["retryable"] is True
    assert r.headers["Retry-After"] == "1"
    assert await _order_count(async_client) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_allocation_timeout_maps_to_storage_unavailable(
        async_client: AsyncClient, menu_item_id, sample_order_payload, monkeypatch):
    monkeypatch.setattr(get_settings(), "ORDER_CREATE_TIMEOUT_SECONDS", 0.05)
    app.dependency_overrides[get_tracking_id_generator] = lambda: _StalledGenerator()

    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))

    assert r.status_code == 503, r.text
    assert r.json()["error"]["code"] == "STORAGE_UNAVAILABLE"
    assert await _order_count(async_client) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_notifier_failure_does_not_fail_order(
        async_client: AsyncClient, menu_item_id, sample_order_payload):
    app.dependency_overrides[get_tracking_id_generator] = lambda: MemoryTrackingIdGenerator()
    app.dependency_overrides[get_notifier] = lambda: _BrokenNotifier()

    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))

    assert r.status_code == 201, r.text
    assert r.json()["data"]["tracking_id"].endswith("-0001")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_db_failure_returns_standardized_db_error(
        async_client: AsyncClient, menu_item_id, sample_order_payload, monkeypatch):
    """A raw SQLAlchemyError escaping the service maps to 500 DB_ERROR."""

    class SyntheticDBError(SQLAlchemyError):
        pass

    async def boom(*args, **kwargs):  # noqa: D401
        raise SyntheticDBError("synthetic db failure")

    monkeypatch.setattr("src.services.order_service._resolve_items", boom)

    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))

    assert r.status_code == 500, r.text
    assert r.json()["error"]["code"] == "DB_ERROR"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tracking_sequence_endpoint_reports_storage_outage(async_client: AsyncClient):
    app.dependency_overrides[get_tracking_id_generator] = lambda: _UnavailableGenerator()

    r = await async_client.get("/api/v1/system/tracking-sequence")

    assert r.status_code == 503
    assert r.json()["error"]["code"] == "STORAGE_UNAVAILABLE"
