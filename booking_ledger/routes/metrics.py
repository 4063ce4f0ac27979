"""
Prometheus metrics endpoint.

Example:
    GET /metrics

    Response:
        # HELP booking_reservations_created_total Total number of reservations committed
        # TYPE booking_reservations_created_total counter
        booking_reservations_created_total{payment_method="stripe"} 42.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """
    Expose ledger and sync metrics in Prometheus text format.

    Returns:
        Response: Metrics with Content-Type text/plain
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
