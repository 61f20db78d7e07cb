"""
FastAPI application factory and configuration.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, UTC

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Gauge, Histogram
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .config.database import (
    async_database_health_check,
    async_engine,
    check_async_database_connection,
)
from .config.logging import bind_request_context, configure_logging
from .config.observability import (
    configure_observability,
    instrument_fastapi,
    instrument_sqlalchemy,
    performance_monitor,
    trace_operation,
)
from .config.settings import get_settings
from .routers import menu_router, metrics_router, orders_router, system_router
from .services.tracking_id import get_tracking_id_generator
from .utils.errors import ERROR_CODES, DomainError, error_payload

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
APP_START_TIME = datetime.now(UTC)

# Native Prometheus instrumentation (deterministic, independent of OTEL setup)
APP_REQUEST_COUNT = Counter(
    "app_requests_total",
    "Total HTTP requests processed",
    ["method", "path", "status"],
)
APP_REQUEST_LATENCY = Histogram(
    "app_request_duration_seconds",
    "Request latency in seconds",
    ["method", "path", "status"],
)
APP_UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)


class ResponseTimeMiddleware(BaseHTTPMiddleware):
    """Record request latency metrics and flag slow responses."""

    async def dispatch(self, request: Request, call_next):  # noqa: D401
        start_time = time.time()
        response = await call_next(request)
        duration_s = time.time() - start_time
        response_time_ms = duration_s * 1000
        response.headers["X-Response-Time"] = f"{response_time_ms:.1f}ms"

        status = str(getattr(response, "status_code", 0))
        path = request.url.path
        performance_monitor.record_request(
            endpoint=path,
            method=request.method,
            duration_ms=response_time_ms,
            status_code=int(status),
        )
        APP_REQUEST_COUNT.labels(request.method, path, status).inc()
        APP_REQUEST_LATENCY.labels(request.method, path, status).observe(duration_s)
        APP_UPTIME_SECONDS.set(
            (datetime.now(UTC) - APP_START_TIME).total_seconds())

        if response_time_ms > 200:
            logger.warning(
                "Slow response: %.1fms for %s %s",
                response_time_ms,
                request.method,
                path,
            )
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generate a per-request ID and bind it into the structured log context."""

    async def dispatch(self, request: Request, call_next):  # noqa: D401
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    settings = get_settings()
    configure_logging()
    logger.info("Starting up SK Orders API...")

    fast_tests = os.getenv("FAST_TESTS") == "1"
    if settings.ENABLE_TRACING and not fast_tests:
        configure_observability(environment=settings.ENVIRONMENT)
        instrument_fastapi(app)
        instrument_sqlalchemy(async_engine.sync_engine)
        logger.info("Observability setup complete")

    generator = get_tracking_id_generator()
    logger.info(
        "Tracking ids: backend=%s prefix=%s timezone=%s",
        generator.backend,
        settings.TRACKING_ID_PREFIX,
        settings.TRACKING_ID_TIMEZONE,
    )

    if fast_tests:
        logger.info("FAST_TESTS=1: skipping DB connectivity check")
        yield
        return

    if not await check_async_database_connection():
        logger.error("Failed to connect to database")
        raise RuntimeError("Database connection failed")
    # Schema is managed by Alembic (backend/run_migrations.py)
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down SK Orders API...")
    await async_engine.dispose()


def create_application() -> FastAPI:
    """Create and configure FastAPI application."""

    application_obj = FastAPI(
        title="SK Orders API",
        description="Menu, checkout and order tracking API for the SK kitchen",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan
    )

    setup_middleware(application_obj)
    setup_exception_handlers(application_obj)
    setup_routes(application_obj)

    return application_obj


def setup_middleware(app: FastAPI) -> None:
    """Setup application middleware."""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ResponseTimeMiddleware)
    app.add_middleware(RequestIDMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers."""

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        """Map domain errors to their HTTP status with the standard envelope."""
        if exc.http_status >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        headers = {"Retry-After": "1"} if exc.http_status == 503 else None
        return JSONResponse(
            status_code=exc.http_status,
            content=error_payload(exc.code, exc.message,
                                  details=exc.details, path=str(request.url.path)),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with standardized response."""
        # Sanitize error details to ensure all values JSON serializable
        sanitized = []
        for err in exc.errors():
            cleaned = {}
            for k, v in err.items():
                try:
                    json.dumps(v)
                    cleaned[k] = v
                except (TypeError, ValueError):
                    cleaned[k] = str(v)
            sanitized.append(cleaned)
        return JSONResponse(
            status_code=422,
            content=error_payload(ERROR_CODES["validation"], "Request validation failed",
                                  details=sanitized, path=str(request.url.path)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with standardized response."""
        code = ERROR_CODES["not_found"] if exc.status_code == 404 else "HTTP_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(code, str(exc.detail), path=str(request.url.path)),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error: %s", exc, exc_info=True)
        performance_monitor.record_error()
        return JSONResponse(
            status_code=500,
            content=error_payload(ERROR_CODES["db"], "A database error occurred",
                                  path=str(request.url.path)),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        performance_monitor.record_error()
        return JSONResponse(
            status_code=500,
            content=error_payload(ERROR_CODES["internal"], "An unexpected error occurred",
                                  path=str(request.url.path)),
        )


def setup_routes(app: FastAPI) -> None:
    """Setup application routes."""

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        with trace_operation("health_check"):
            db_health = await async_database_health_check()
            return {
                "status": "healthy" if db_health["status"] == "healthy" else "unhealthy",
                "timestamp": time.time(),
                "database": db_health,
                "version": APP_VERSION
            }

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "status": "success",
            "data": {
                "message": "SK Orders API",
                "version": APP_VERSION,
                "docs": "/docs",
                "health": "/health"
            },
            "timestamp": time.time()
        }

    app.include_router(menu_router, prefix="/api/v1/menu", tags=["Menu"])
    app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(system_router, prefix="/api/v1/system", tags=["System"])
    # Exposes /metrics (Prometheus exposition format) without API prefix
    app.include_router(metrics_router)


# Create the application instance
app = create_application()


__all__ = ["app", "create_application"]
