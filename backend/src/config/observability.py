"""
OpenTelemetry and Prometheus configuration for the SK ordering service.
Provides observability through distributed tracing, metrics, and structured logging.
"""

from typing import Optional

import structlog
from opentelemetry import trace, metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, start_http_server


def configure_observability(
    service_name: str = "sk-orders",
    environment: str = "development",
    enable_prometheus: bool = True,
    prometheus_port: Optional[int] = None
) -> None:
    """
    Configure OpenTelemetry tracing and metrics.

    Args:
        service_name: Name of the service for tracing
        environment: Environment (development, staging, production)
        enable_prometheus: Whether to bridge OTEL metrics into Prometheus
        prometheus_port: Optional standalone Prometheus port; the app's own
            /metrics route serves the same registry when this is None
    """
    configure_tracing(service_name, environment)

    if enable_prometheus:
        configure_metrics(prometheus_port)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Observability configured",
        service_name=service_name,
        environment=environment,
        prometheus_enabled=enable_prometheus,
        prometheus_port=prometheus_port if enable_prometheus else None
    )


def configure_tracing(service_name: str, environment: str) -> None:
    """Configure OpenTelemetry distributed tracing."""

    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
        "environment": environment,
    })

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    # Console exporter for development
    if environment == "development":
        span_processor = BatchSpanProcessor(ConsoleSpanExporter())
        tracer_provider.add_span_processor(span_processor)


def configure_metrics(prometheus_port: Optional[int] = None) -> None:
    """Configure OpenTelemetry metrics with Prometheus export."""
    meter_provider = MeterProvider(metric_readers=[PrometheusMetricReader()])
    metrics.set_meter_provider(meter_provider)

    if prometheus_port:
        start_http_server(prometheus_port)


def instrument_fastapi(app) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine) -> None:
    """Instrument SQLAlchemy engine with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine)


def get_tracer(name: str) -> trace.Tracer:
    """Get OpenTelemetry tracer for manual instrumentation."""
    return trace.get_tracer(name)


def get_meter(name: str) -> metrics.Meter:
    """Get OpenTelemetry meter for custom metrics."""
    return metrics.get_meter(name)


# Custom context manager for tracing business operations
class trace_operation:
    """Context manager for tracing business operations with structured logging."""

    def __init__(self, operation_name: str, **attributes):
        self.operation_name = operation_name
        self.attributes = attributes
        self.tracer = get_tracer(__name__)
        self.logger = structlog.get_logger(__name__)
        self.span: Optional[trace.Span] = None

    def __enter__(self):
        self.span = self.tracer.start_span(
            self.operation_name,
            attributes=self.attributes
        )
        return self.span

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation_name,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.attributes
            )
            if self.span:
                self.span.record_exception(exc_val)
                self.span.set_status(trace.Status(
                    trace.StatusCode.ERROR, str(exc_val)))
        elif self.span:
            self.span.set_status(trace.Status(trace.StatusCode.OK))

        if self.span:
            self.span.end()
        return False


class PerformanceMonitor:
    """Request latency / error accounting through the OTEL meter."""

    def __init__(self):
        self.meter = get_meter(__name__)
        self.request_duration = self.meter.create_histogram(
            name="api_request_duration_ms",
            description="API request duration in milliseconds",
            unit="ms"
        )
        self.request_count = self.meter.create_counter(
            name="api_request_count",
            description="Total number of API requests"
        )
        self.error_count = self.meter.create_counter(
            name="api_error_count",
            description="Total number of unhandled API errors"
        )

    def record_request(self, endpoint: str, method: str, duration_ms: float, status_code: int):
        """Record API request metrics."""
        attributes = {
            "endpoint": endpoint,
            "method": method,
            "status_code": str(status_code)
        }
        self.request_duration.record(duration_ms, attributes)
        self.request_count.add(1, attributes)

    def record_error(self):
        self.error_count.add(1)


performance_monitor = PerformanceMonitor()

# Native Prometheus domain counters (deterministic for tests, independent of OTEL setup)
TRACKING_IDS_ISSUED = Counter(
    "tracking_ids_issued_total",
    "Tracking identifiers issued",
    ["backend"],
)
TRACKING_ID_FAILURES = Counter(
    "tracking_id_failures_total",
    "Tracking identifier allocations that failed",
    ["reason"],
)
TRACKING_ID_ALLOCATION_SECONDS = Histogram(
    "tracking_id_allocation_seconds",
    "Time spent allocating a tracking identifier",
    ["backend"],
)
ORDER_OPERATIONS = Counter(
    "order_operations_total",
    "Order operations performed",
    ["operation"],
)


def record_tracking_id_issued(backend: str, duration_s: float) -> None:
    TRACKING_IDS_ISSUED.labels(backend).inc()
    TRACKING_ID_ALLOCATION_SECONDS.labels(backend).observe(duration_s)


def record_tracking_id_failure(reason: str) -> None:
    TRACKING_ID_FAILURES.labels(reason).inc()


def record_order_operation(operation: str) -> None:
    ORDER_OPERATIONS.labels(operation).inc()


__all__ = [
    "configure_observability",
    "configure_tracing",
    "configure_metrics",
    "instrument_fastapi",
    "instrument_sqlalchemy",
    "get_tracer",
    "get_meter",
    "trace_operation",
    "PerformanceMonitor",
    "performance_monitor",
    "record_tracking_id_issued",
    "record_tracking_id_failure",
    "record_order_operation",
]
