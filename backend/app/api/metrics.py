"""Prometheus text exposition of the realtime counters and gauges."""

from fastapi import APIRouter, Response

from app.monitoring.metrics import realtime_rooms
from app.monitoring.registry import registry
from roomrelay.realtime import get_hub

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"


@router.get("/metrics", response_class=Response)
def export_metrics() -> Response:
    # Room count is read from the live store so a rebuilt hub never reports stale totals.
    realtime_rooms.set(len(get_hub().rooms))
    return Response(content=registry.render(), media_type=PROMETHEUS_CONTENT_TYPE)
