"""
Operational endpoints: liveness, readiness and Prometheus metrics.

Health checks are used by container orchestration platforms to decide whether
to restart the service or send it traffic.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.engine import Engine

from booking_engine.db.engine import check_engine_health
from booking_engine.dependencies import get_db_engine

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """
    Liveness check. Returns 200 whenever the process can serve HTTP.

    Example:
        >>> GET /health
        {"status": "ok"}
    """
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check(engine: Engine = Depends(get_db_engine)) -> JSONResponse:
    """
    Readiness check. 200 once the reservations store answers queries, else 503.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"database": "ok"}}
    """
    if check_engine_health(engine):
        return JSONResponse(content={"status": "ready", "checks": {"database": "ok"}})

    logger.error("readiness_check_failed", reason="database_not_accessible")
    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "checks": {"database": "failed"}},
    )


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """
    Prometheus scrape target in the text exposition format.

    Example Response:
        # HELP booking_reservations_created_total Total number of reservations admitted as holds
        # TYPE booking_reservations_created_total counter
        booking_reservations_created_total 42.0
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
