"""Prometheus metrics exposition router.

Registers a /metrics endpoint exposing Prometheus text format collected via
the OpenTelemetry PrometheusMetricReader and direct prometheus_client collectors.
"""
from fastapi import APIRouter, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:  # noqa: D401
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
