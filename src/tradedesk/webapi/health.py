"""Health check endpoints for the trading API."""

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

from ..config.logging import get_logger
from ..ormdb.database import check_database_health
from .models.responses import HealthResponse, HealthStatus

logger = get_logger(__name__)
router = APIRouter()

# Track application start time for uptime calculation
_app_start_time = time.time()


def check_event_bus_health(request: Request) -> Dict[str, Any]:
    """Report event bus counters, degraded when handlers have failed."""
    event_bus = getattr(request.app.state, "event_bus", None)
    if event_bus is None:
        return {"status": "not_configured"}

    stats = event_bus.get_statistics()
    return {
        "status": "healthy" if stats["errors_count"] == 0 else "degraded",
        "events_published": stats["events_published"],
        "errors_count": stats["errors_count"],
        "total_handlers": stats["total_handlers"],
    }


@router.get("/health", response_model=HealthResponse, summary="Basic Health Check")
async def basic_health_check(request: Request):
    """
    Perform a basic health check.

    Returns database connectivity, event bus counters and uptime.
    """
    uptime_seconds = time.time() - _app_start_time

    db_health = check_database_health(
        getattr(request.app.state, "session_factory", None)
    )
    services = {
        "database": db_health,
        "event_bus": check_event_bus_health(request),
    }

    if db_health["status"] != "healthy":
        overall_status = "unhealthy"
    elif services["event_bus"]["status"] == "degraded":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    health_status = HealthStatus(
        status=overall_status,
        services=services,
        uptime_seconds=uptime_seconds,
        version=request.app.state.settings.app_version,
    )

    logger.debug("Basic health check completed", status=overall_status)
    return HealthResponse(
        success=True,
        health=health_status,
        request_id=getattr(request.state, "request_id", None),
    )
