"""Tracking id and order counters exposed on /metrics."""
from __future__ import annotations

import asyncio
import re
from typing import Dict

import pytest

from src.main import app
from src.config.settings import get_settings
from src.services.tracking_id import MemoryTrackingIdGenerator, get_tracking_id_generator
from src.utils.errors import StorageUnavailable

METRIC_LINE_RE = re.compile(
    r'^(?P<name>[a-z_]+)\{(?P<label>[a-z]+)="(?P<value_label>[a-z_]+)"}\s+(?P<value>[0-9]+(?:\.[0-9]+)?)$')


def _parse(metrics_text: str) -> Dict[tuple, float]:
    values: Dict[tuple, float] = {}
    for line in metrics_text.splitlines():
        m = METRIC_LINE_RE.match(line.strip())
        if m:
            values[(m.group("name"), m.group("value_label"))] = float(m.group("value"))
    return values


@pytest.mark.integration
@pytest.mark.asyncio
async def test_tracking_and_order_counters_increment(async_client, menu_item_id, sample_order_payload):
    async def current():  # noqa: D401
        r = await async_client.get("/metrics")
        assert r.status_code == 200, r.text
        return _parse(r.text)

    baseline = await current()

    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))
    assert r.status_code == 201, r.text
    after_create = await current()

    issued = ("tracking_ids_issued_total", "database")
    created = ("order_operations_total", "create")
    assert after_create.get(issued, 0.0) >= baseline.get(issued, 0.0) + 1
    assert after_create.get(created, 0.0) >= baseline.get(created, 0.0) + 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_timeout_failures_are_counted(async_client, menu_item_id, sample_order_payload, monkeypatch):
    class _Slow(MemoryTrackingIdGenerator):
        async def generate(self, db=None) -> str:
            await asyncio.sleep(5)
            raise StorageUnavailable()

    monkeypatch.setattr(get_settings(), "ORDER_CREATE_TIMEOUT_SECONDS", 0.05)
    app.dependency_overrides[get_tracking_id_generator] = lambda: _Slow()

    before = _parse((await async_client.get("/metrics")).text)
    r = await async_client.post("/api/v1/orders", json=sample_order_payload(menu_item_id))
    assert r.status_code == 503
    after = _parse((await async_client.get("/metrics")).text)

    key = ("tracking_id_failures_total", "timeout")
    assert after.get(key, 0.0) == before.get(key, 0.0) + 1
