"""
Inkwell Backend — Health Check Route
======================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Runs SELECT 1 against the database and asks the completion client
       whether it is configured. The remote API is not called: probes run
       every few seconds and completions are billed.

Status levels:
    healthy:    database connected and completion API configured
    degraded:   database connected, completion API unconfigured (AI routes fail)
    unhealthy:  database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from inkwell import __version__
from inkwell.database import engine
from inkwell.schemas.note import HealthResponse
from inkwell.services.completion_service import completion_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check() -> HealthResponse:
    db_status = "connected"
    llm_status = "configured"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not await completion_service.health_check():
        llm_status = "unconfigured"
        if overall == "healthy":
            overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        llm=llm_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
