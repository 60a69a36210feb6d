"""
ShutterBox Backend — Health Check Route
=========================================

GET /health for container probes and load balancers. Always answers 200;
the body says how well the service is doing:

    healthy    database answers, vision available (or switched off)
    degraded   database answers, vision down or its circuit open
    unhealthy  database does not answer
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from shutterbox import __version__
from shutterbox.database import engine
from shutterbox.schemas.common import HealthResponse
from shutterbox.services.vision_service import vision_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

STARTED_AT = time.monotonic()


async def _probe_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database probe failed: %s", e)
        return "disconnected"
    return "connected"


async def _probe_vision() -> str:
    if not vision_service.enabled:
        return "disabled"
    breaker = vision_service.circuit_breaker
    if breaker.state == breaker.OPEN:
        return "circuit_open"
    return "available" if await vision_service.health_check() else "unavailable"


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check() -> HealthResponse:
    database = await _probe_database()
    vision = await _probe_vision()

    if database != "connected":
        status = "unhealthy"
    elif vision in ("circuit_open", "unavailable"):
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=__version__,
        database=database,
        vision=vision,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 2),
    )
