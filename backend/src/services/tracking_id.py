"""Order tracking identifier allocation.

Tracking ids look like ``SK-20251031-0001``: brand prefix, issue date
(``YYYYMMDD`` in the configured timezone, UTC by default) and a per-day
counter zero-padded to at least four digits. Counters restart at 1 every day
and are gapless and unique within a day.

Two allocators share the `TrackingIdGenerator` contract:

- `DatabaseTrackingIdGenerator` keeps one ``day_sequences`` row per date and
  increments it with a single ``INSERT .. ON CONFLICT .. DO UPDATE .. RETURNING``
  statement, so concurrent callers (across processes) are serialized by the
  database and never observe the same value. No in-process lock is taken.
- `MemoryTrackingIdGenerator` keeps counters on the instance. Single process
  only; counters are lost on restart, so ids restart at 0001 for the current
  day. Development and tests only.
"""
from __future__ import annotations

import asyncio
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, tzinfo, UTC
from functools import lru_cache
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.observability import record_tracking_id_failure, record_tracking_id_issued
from src.config.settings import Settings, get_settings
from src.models.database import DaySequence
from src.utils.errors import MalformedState, StorageUnavailable

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

TRACKING_ID_RE = re.compile(
    r"^(?P<prefix>[A-Z0-9]{1,8})-(?P<date>\d{8})-(?P<counter>\d{4,})$")

# One statement: insert the day's row at 1 or bump the existing row.
UPSERT_INCREMENT = text(
    """
    INSERT INTO day_sequences ("date", counter, updated_at)
    VALUES (:date_key, 1, CURRENT_TIMESTAMP)
    ON CONFLICT ("date") DO UPDATE
        SET counter = day_sequences.counter + 1, updated_at = CURRENT_TIMESTAMP
    RETURNING counter
    """
)

# SQLite columns accept any storage class and 'abc' + 1 evaluates to 1, so a
# non-integer counter becomes NULL and is rejected by the NOT NULL constraint.
UPSERT_INCREMENT_SQLITE = text(
    """
    INSERT INTO day_sequences ("date", counter, updated_at)
    VALUES (:date_key, 1, CURRENT_TIMESTAMP)
    ON CONFLICT ("date") DO UPDATE
        SET counter = CASE WHEN typeof(day_sequences.counter) = 'integer'
                           THEN day_sequences.counter + 1 ELSE NULL END,
            updated_at = CURRENT_TIMESTAMP
    RETURNING counter
    """
)

# SQLSTATEs worth a bounded retry: serialization failure, deadlock detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def utc_now() -> datetime:
    return datetime.now(UTC)


def current_date_key(now: datetime, tz: tzinfo = UTC) -> str:
    """Calendar date of `now` in `tz` as ``YYYYMMDD``. Naive datetimes are UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(tz).strftime("%Y%m%d")


def format_tracking_id(prefix: str, date_key: str, counter: int) -> str:
    if counter < 1:
        raise ValueError(f"counter must be >= 1, got {counter}")
    return f"{prefix}-{date_key}-{counter:04d}"


@dataclass(frozen=True)
class TrackingIdParts:
    prefix: str
    date_key: str
    counter: int


def parse_tracking_id(value: str) -> TrackingIdParts:
    """Split a tracking id into its parts.

    Raises:
        ValueError: if the value is not ``PREFIX-YYYYMMDD-NNNN`` with a real
            calendar date and a counter >= 1.
    """
    m = TRACKING_ID_RE.fullmatch(value or "")
    if not m:
        raise ValueError(f"Malformed tracking id: {value!r}")
    datetime.strptime(m.group("date"), "%Y%m%d")
    counter = int(m.group("counter"))
    if counter < 1:
        raise ValueError(f"Malformed tracking id: {value!r}")
    return TrackingIdParts(m.group("prefix"), m.group("date"), counter)


def _checked_counter(date_key: str, raw, minimum: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < minimum:
        raise MalformedState(date_key, raw)
    return raw


class TrackingIdGenerator(ABC):
    """Contract shared by both allocators."""

    backend = "abstract"

    def __init__(self, prefix: str = "SK", tz: tzinfo = UTC, clock: Optional[Clock] = None):
        self.prefix = prefix
        self.tz = tz
        self.clock = clock or utc_now

    def date_key(self) -> str:
        return current_date_key(self.clock(), self.tz)

    @abstractmethod
    async def generate(self, db: Optional[AsyncSession] = None) -> str:
        """Return the next tracking id for the current date."""

    @abstractmethod
    async def peek(self, date_key: Optional[str] = None) -> int:
        """Return the last counter issued for `date_key` (today by default), 0 if none."""

    def _issued(self, date_key: str, counter: int, started: float) -> str:
        tracking_id = format_tracking_id(self.prefix, date_key, counter)
        record_tracking_id_issued(self.backend, time.perf_counter() - started)
        logger.info("tracking_id_issued", tracking_id=tracking_id,
                    backend=self.backend)
        return tracking_id


class MemoryTrackingIdGenerator(TrackingIdGenerator):
    """Per-instance counters; nothing is shared or persisted."""

    backend = "memory"

    def __init__(self, prefix: str = "SK", tz: tzinfo = UTC, clock: Optional[Clock] = None):
        super().__init__(prefix=prefix, tz=tz, clock=clock)
        self._counters: Dict[str, int] = {}
        # Held only for the read-modify-write; never across an await
        self._lock = threading.Lock()

    async def generate(self, db: Optional[AsyncSession] = None) -> str:
        started = time.perf_counter()
        date_key = self.date_key()
        with self._lock:
            counter = self._counters.get(date_key, 0) + 1
            self._counters[date_key] = counter
        return self._issued(date_key, counter, started)

    async def peek(self, date_key: Optional[str] = None) -> int:
        return self._counters.get(date_key or self.date_key(), 0)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)


class DatabaseTrackingIdGenerator(TrackingIdGenerator):
    """Durable allocator backed by the ``day_sequences`` table.

    Works on PostgreSQL and SQLite >= 3.35 (``RETURNING`` support).

    When `generate` receives the caller's session the increment joins the
    caller's transaction, so it commits or rolls back together with the order
    row. Without one, a short transaction is opened and committed here.
    """

    backend = "database"

    def __init__(
        self,
        session_factory: async_sessionmaker,
        prefix: str = "SK",
        tz: tzinfo = UTC,
        clock: Optional[Clock] = None,
        max_retries: int = 5,
        retry_delay: float = 0.005,
    ):
        super().__init__(prefix=prefix, tz=tz, clock=clock)
        self._session_factory = session_factory
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def generate(self, db: Optional[AsyncSession] = None) -> str:
        started = time.perf_counter()
        date_key = self.date_key()
        if db is not None:
            counter = await self._increment(db, date_key, owns_session=False)
        else:
            counter = await self._increment_in_own_transaction(date_key)
        return self._issued(date_key, counter, started)

    async def peek(self, date_key: Optional[str] = None) -> int:
        date_key = date_key or self.date_key()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DaySequence.counter).where(DaySequence.date == date_key))
                raw = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageUnavailable(
                "Could not read tracking sequence", details={"date": date_key}) from exc
        if raw is None:
            return 0
        return _checked_counter(date_key, raw, minimum=0)

    async def _increment_in_own_transaction(self, date_key: str) -> int:
        try:
            async with self._session_factory() as session:
                counter = await self._increment(session, date_key, owns_session=True)
                await session.commit()
                return counter
        except (SQLAlchemyError, OSError) as exc:
            record_tracking_id_failure("commit")
            logger.error("tracking_id_storage_error", date=date_key,
                         stage="commit", error=str(exc))
            raise StorageUnavailable(
                "Could not commit tracking sequence increment",
                details={"date": date_key}) from exc

    async def _increment(self, db: AsyncSession, date_key: str, owns_session: bool) -> int:
        """Run the atomic upsert-increment with bounded retries on lock contention.

        In the caller's transaction each attempt runs in a savepoint: PostgreSQL
        aborts the whole transaction on a serialization failure or deadlock, so
        a retry must start from a rolled-back savepoint. SQLite is excluded
        because pysqlite's outermost SAVEPOINT/RELEASE would commit the
        caller's transaction early, and a busy error leaves it usable anyway.
        """
        dialect = _dialect_name(db)
        statement = UPSERT_INCREMENT_SQLITE if dialect == "sqlite" else UPSERT_INCREMENT
        use_savepoint = not owns_session and dialect != "sqlite"
        params = {"date_key": date_key}
        for attempt in range(1, self.max_retries + 1):
            try:
                if use_savepoint:
                    async with db.begin_nested():
                        result = await db.execute(statement, params)
                        raw = result.scalar_one_or_none()
                else:
                    result = await db.execute(statement, params)
                    raw = result.scalar_one_or_none()
            except IntegrityError as exc:
                record_tracking_id_failure("malformed")
                logger.error("tracking_id_malformed_state", date=date_key,
                             error=str(exc.orig))
                raise MalformedState(date_key, "non-integer counter") from exc
            except DBAPIError as exc:
                if _is_transient(exc) and attempt < self.max_retries:
                    logger.warning("tracking_id_retry", date=date_key,
                                   attempt=attempt, error=str(exc.orig))
                    if owns_session:
                        await db.rollback()
                    await asyncio.sleep(self.retry_delay * attempt)
                    continue
                reason = "contention" if _is_transient(exc) else "unreachable"
                record_tracking_id_failure(reason)
                logger.error("tracking_id_storage_error", date=date_key,
                             attempt=attempt, reason=reason, error=str(exc.orig))
                raise StorageUnavailable(
                    "Tracking sequence storage unavailable",
                    details={"date": date_key, "attempts": attempt}) from exc
            except (SQLAlchemyError, OSError) as exc:
                record_tracking_id_failure("unreachable")
                logger.error("tracking_id_storage_error", date=date_key,
                             attempt=attempt, reason="unreachable", error=str(exc))
                raise StorageUnavailable(
                    "Tracking sequence storage unavailable",
                    details={"date": date_key, "attempts": attempt}) from exc
            try:
                return _checked_counter(date_key, raw, minimum=1)
            except MalformedState:
                record_tracking_id_failure("malformed")
                raise
        raise StorageUnavailable(
            "Tracking sequence retries exhausted", details={"date": date_key})


def _is_transient(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) in _RETRYABLE_SQLSTATES:
        return True
    msg = str(orig or exc).lower()
    return "database is locked" in msg or "busy" in msg or "locked" in msg


def _dialect_name(db: AsyncSession) -> Optional[str]:
    bind = getattr(db, "bind", None)
    return getattr(getattr(bind, "dialect", None), "name", None)


def build_tracking_id_generator(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    clock: Optional[Clock] = None,
) -> TrackingIdGenerator:
    """Pick the allocator for this process from settings."""
    settings = settings or get_settings()
    backend = settings.resolved_tracking_backend()
    if backend == "database":
        if session_factory is None:
            from src.config.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        return DatabaseTrackingIdGenerator(
            session_factory,
            prefix=settings.TRACKING_ID_PREFIX,
            tz=settings.tracking_tz,
            clock=clock,
            max_retries=settings.TRACKING_ID_MAX_RETRIES,
            retry_delay=settings.TRACKING_ID_RETRY_DELAY_MS / 1000,
        )
    # Not reconciled with day_sequences: switching to the database backend
    # later the same day restarts numbering at 0001.
    logger.warning("tracking_id_memory_backend",
                   detail="tracking ids are not durable and restart at 0001 after a restart")
    return MemoryTrackingIdGenerator(
        prefix=settings.TRACKING_ID_PREFIX, tz=settings.tracking_tz, clock=clock)


@lru_cache(maxsize=1)
def get_tracking_id_generator() -> TrackingIdGenerator:
    """FastAPI dependency: one allocator per process."""
    return build_tracking_id_generator()


__all__ = [
    "TrackingIdGenerator",
    "MemoryTrackingIdGenerator",
    "DatabaseTrackingIdGenerator",
    "TrackingIdParts",
    "TRACKING_ID_RE",
    "current_date_key",
    "format_tracking_id",
    "parse_tracking_id",
    "build_tracking_id_generator",
    "get_tracking_id_generator",
]
