"""
ERP Gateway - Health Check Route
=================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database (SELECT 1) and reports the number of open credit
       count streams. The vendor is not probed: every company has its own
       vendor instance, and a probe would spend credits.

Status levels:
    - healthy:   database reachable (HTTP 200)
    - unhealthy: database unreachable (HTTP 200 with status flag; company
                 credentials cannot be resolved, so vendor calls will fail)
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from erp_gateway import __version__
from erp_gateway.database import engine
from erp_gateway.dependencies import get_credit_bus
from erp_gateway.schemas.common import HealthResponse
from erp_gateway.services.credit_bus import CreditCountBus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(bus: CreditCountBus = Depends(get_credit_bus)) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        live_subscribers=bus.subscriber_count(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
