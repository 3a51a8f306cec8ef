"""
Snapcheck Backend — Health Check Route
========================================

What:  Liveness/readiness probe for the orchestrator and load balancer.
How:   Runs SELECT 1 against the database and reports the billing gateway
       state without calling Stripe (probes must stay cheap).

Status levels:
    healthy:   database reachable, billing usable
    degraded:  database reachable, billing unconfigured or circuit open (200)
    unhealthy: database unreachable (503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import __version__
from app.database import engine
from app.schemas.common import HealthResponse
from app.services.stripe_service import CircuitBreaker, stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not stripe_service.configured:
        billing_status = "unconfigured"
    elif stripe_service.circuit_breaker.state == CircuitBreaker.OPEN:
        billing_status = "circuit_open"
    else:
        billing_status = "available"

    if billing_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        billing=billing_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
