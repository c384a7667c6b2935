"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes webhook, order transition, export and regeneration counters plus
    the export render latency histogram.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
