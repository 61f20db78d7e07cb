import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
@pytest.mark.smoke
async def test_root_and_health(async_client: AsyncClient):
    r = await async_client.get("/")
    assert r.status_code == 200
    assert r.json()["data"]["message"] == "SK Orders API"

    r = await async_client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


@pytest.mark.asyncio
@pytest.mark.smoke
async def test_system_endpoints(async_client: AsyncClient):
    r = await async_client.get("/api/v1/system/health")
    assert r.json()["data"] == {"ok": True}

    r = await async_client.get("/api/v1/system/readiness")
    assert r.status_code == 200
    assert r.json()["data"]["database"]["status"] == "healthy"

    r = await async_client.get("/api/v1/system/tracking-sequence")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["prefix"] == "SK"
    assert data["backend"] == "database"
    assert data["counter"] == 0


@pytest.mark.asyncio
@pytest.mark.smoke
async def test_metrics_endpoint_exposes_prometheus_text(async_client: AsyncClient):
    await async_client.get("/")
    r = await async_client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "app_requests_total" in r.text
    assert "tracking_ids_issued_total" in r.text


@pytest.mark.asyncio
@pytest.mark.smoke
async def test_unknown_route_uses_error_envelope(async_client: AsyncClient):
    r = await async_client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"
