"""
Health check endpoints for the node router.

These report on the router process itself, not on acceleration nodes; node
health lives under /nodes/status.
"""

import os
import time
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from noderouter import __version__
from noderouter.api.v1.deps import get_engine
from noderouter.services.engine import RoutingEngine


class HealthStatus(BaseModel):
    """Health status response model."""
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: float
    environment: str
    node_count: int
    scheduler_running: bool


# Track service start time for uptime calculation
_start_time = time.time()

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/",
    response_model=HealthStatus,
    summary="Basic health check",
    description="Returns basic health status of the node router"
)
async def health_check(engine: RoutingEngine = Depends(get_engine)) -> HealthStatus:
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        uptime_seconds=time.time() - _start_time,
        environment=os.getenv("ENVIRONMENT", "development"),
        node_count=len(engine.store),
        scheduler_running=engine.scheduler.running
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Returns 200 once the routing engine is built"
)
async def readiness_check(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, str]:
    """
    Readiness check endpoint.

    Raises:
        HTTPException: 503 if no service has been configured.
    """
    if not engine.store.services:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready - no services configured"
        )
    return {"status": "ready"}


@router.get(
    "/live",
    summary="Liveness check",
    description="Returns 200 if the process is alive"
)
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
