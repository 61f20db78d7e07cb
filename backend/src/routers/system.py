"""System router providing health, readiness and tracking sequence endpoints."""
from fastapi import APIRouter, Depends
import time

from src.config.database import async_database_health_check
from src.services.tracking_id import TrackingIdGenerator, get_tracking_id_generator
from src.utils.api_shapes import success

router = APIRouter()

_start_time = time.time()


@router.get("/health", tags=["System"])  # liveness
async def health():
    return success({"ok": True})


@router.get("/readiness", tags=["System"])  # readiness: db connectivity
async def readiness():
    db_health = await async_database_health_check()
    return success({"database": db_health, "uptime_s": int(time.time() - _start_time)})


@router.get("/tracking-sequence", tags=["System"])
async def tracking_sequence(
    generator: TrackingIdGenerator = Depends(get_tracking_id_generator),
):
    """Today's date key and the last counter issued for it (read-only)."""
    date_key = generator.date_key()
    counter = await generator.peek(date_key)
    return success({
        "date": date_key,
        "backend": generator.backend,
        "prefix": generator.prefix,
        "counter": counter,
    })
