"""Application settings module.

Provides centralized configuration using environment variables with sane defaults.
Tracking identifiers default to the `SK` brand prefix and UTC calendar dates
(`TRACKING_ID_TIMEZONE`), matching identifiers already issued in production.
"""
from __future__ import annotations

from functools import lru_cache
import os
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, field_validator

_PREFIX_RE = re.compile(r"^[A-Z0-9]{1,8}$")
TRACKING_BACKENDS = {"auto", "database", "memory"}


class Settings(BaseModel):
    # Tracking identifier allocation
    TRACKING_ID_PREFIX: str = "SK"
    TRACKING_ID_TIMEZONE: str = "UTC"
    TRACKING_ID_BACKEND: str = "auto"
    TRACKING_ID_MAX_RETRIES: int = 5
    TRACKING_ID_RETRY_DELAY_MS: int = 5

    # Request-level budget for allocating an order's tracking id
    ORDER_CREATE_TIMEOUT_SECONDS: float = 10.0

    # Observability toggles
    ENABLE_TRACING: bool = False
    ENVIRONMENT: str = "development"

    @field_validator("TRACKING_ID_PREFIX")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not _PREFIX_RE.match(value):
            raise ValueError(
                "TRACKING_ID_PREFIX must be 1-8 uppercase letters or digits")
        return value

    @field_validator("TRACKING_ID_TIMEZONE")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("TRACKING_ID_BACKEND")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in TRACKING_BACKENDS:
            raise ValueError(
                f"TRACKING_ID_BACKEND must be one of {sorted(TRACKING_BACKENDS)}")
        return value

    @field_validator("TRACKING_ID_MAX_RETRIES")
    @classmethod
    def _check_retries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("TRACKING_ID_MAX_RETRIES must be >= 1")
        return value

    @property
    def tracking_tz(self) -> ZoneInfo:
        return ZoneInfo(self.TRACKING_ID_TIMEZONE)

    def resolved_tracking_backend(self) -> str:
        """Resolve `auto` to a concrete allocator backend.

        A configured database (or test mode, which always runs against one)
        selects the durable allocator; otherwise the in-memory fallback.
        """
        if self.TRACKING_ID_BACKEND != "auto":
            return self.TRACKING_ID_BACKEND
        if os.getenv("DATABASE_URL") or os.getenv("ASYNC_DATABASE_URL"):
            return "database"
        if os.getenv("TESTING", "false").lower() == "true":
            return "database"
        return "memory"

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment with type coercion and defaults."""
        def _get_float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                return default

        def _get_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        return cls(
            TRACKING_ID_PREFIX=os.getenv("TRACKING_ID_PREFIX", "SK"),
            TRACKING_ID_TIMEZONE=os.getenv("TRACKING_ID_TIMEZONE", "UTC"),
            TRACKING_ID_BACKEND=os.getenv("TRACKING_ID_BACKEND", "auto"),
            TRACKING_ID_MAX_RETRIES=int(
                os.getenv("TRACKING_ID_MAX_RETRIES", "5")),
            TRACKING_ID_RETRY_DELAY_MS=int(
                os.getenv("TRACKING_ID_RETRY_DELAY_MS", "5")),
            ORDER_CREATE_TIMEOUT_SECONDS=_get_float(
                "ORDER_CREATE_TIMEOUT_SECONDS", 10.0),
            ENABLE_TRACING=_get_bool("ENABLE_TRACING", False),
            ENVIRONMENT=os.getenv("ENVIRONMENT", "development"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance (singleton pattern)."""
    return Settings.load()


__all__ = ["Settings", "get_settings", "TRACKING_BACKENDS"]
