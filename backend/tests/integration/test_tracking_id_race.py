"""Durable allocator against the real (SQLite) day_sequences table."""
import asyncio
from datetime import datetime, timedelta, UTC

import pytest
from sqlalchemy import select

from src.config.database import AsyncSessionLocal
from src.models.database import DaySequence
from src.services.tracking_id import DatabaseTrackingIdGenerator, MemoryTrackingIdGenerator


class _Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _counters(ids):
    return sorted(int(i.rsplit("-", 1)[1]) for i in ids)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sequential_generation_persists_counter():
    gen = DatabaseTrackingIdGenerator(
        AsyncSessionLocal, clock=_Clock(datetime(2025, 10, 31, 8, 0, tzinfo=UTC)))

    ids = [await gen.generate() for _ in range(3)]

    assert ids == ["SK-20251031-0001", "SK-20251031-0002", "SK-20251031-0003"]
    async with AsyncSessionLocal() as session:
        row = (await session.execute(
            select(DaySequence).where(DaySequence.date == "20251031"))).scalar_one()
    assert row.counter == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_generation_unique_and_gapless():
    """50 concurrent allocations for one day yield exactly 1..50."""
    N = 50
    gen = DatabaseTrackingIdGenerator(
        AsyncSessionLocal, clock=_Clock(datetime(2025, 11, 1, 12, 0, tzinfo=UTC)))
    start_barrier = asyncio.Event()

    async def allocate_one():
        await start_barrier.wait()
        return await gen.generate()

    tasks = [asyncio.create_task(allocate_one()) for _ in range(N)]
    # Let all tasks reach the barrier
    await asyncio.sleep(0)
    start_barrier.set()
    ids = await asyncio.gather(*tasks)

    assert len(set(ids)) == N, "Duplicate tracking ids detected"
    assert {i.split("-")[1] for i in ids} == {"20251101"}
    assert _counters(ids) == list(range(1, N + 1))
    assert await gen.peek() == N


@pytest.mark.asyncio
@pytest.mark.integration
async def test_separate_instances_share_the_durable_counter():
    """Two allocators (e.g. two worker processes) never issue the same id."""
    clock = _Clock(datetime(2025, 11, 2, 12, 0, tzinfo=UTC))
    a = DatabaseTrackingIdGenerator(AsyncSessionLocal, clock=clock)
    b = DatabaseTrackingIdGenerator(AsyncSessionLocal, clock=clock)

    ids = await asyncio.gather(*(g.generate() for g in [a, b] * 10))

    assert _counters(ids) == list(range(1, 21))


@pytest.mark.asyncio
@pytest.mark.integration
async def test_counter_resets_on_day_rollover():
    clock = _Clock(datetime(2025, 11, 3, 23, 59, 30, tzinfo=UTC))
    gen = DatabaseTrackingIdGenerator(AsyncSessionLocal, clock=clock)

    assert await gen.generate() == "SK-20251103-0001"
    assert await gen.generate() == "SK-20251103-0002"
    clock.now += timedelta(minutes=1)
    assert await gen.generate() == "SK-20251104-0001"

    assert await gen.peek("20251103") == 2
    assert await gen.peek("20251104") == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_peek_without_row_is_zero():
    gen = DatabaseTrackingIdGenerator(AsyncSessionLocal)
    assert await gen.peek("19990101") == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_memory_allocator_does_not_touch_database():
    clock = _Clock(datetime(2025, 11, 5, 12, 0, tzinfo=UTC))
    mem = MemoryTrackingIdGenerator(clock=clock)
    durable = DatabaseTrackingIdGenerator(AsyncSessionLocal, clock=clock)

    assert await mem.generate() == "SK-20251105-0001"
    assert await durable.peek("20251105") == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_caller_rollback_undoes_increment():
    """Joined to the caller's transaction, the increment rolls back with it."""
    clock = _Clock(datetime(2025, 11, 6, 12, 0, tzinfo=UTC))
    gen = DatabaseTrackingIdGenerator(AsyncSessionLocal, clock=clock)

    async with AsyncSessionLocal() as session:
        assert await gen.generate(session) == "SK-20251106-0001"
        await session.rollback()

    assert await gen.peek() == 0
    assert await gen.generate() == "SK-20251106-0001"
