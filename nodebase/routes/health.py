"""
NodeBase Backend: Health Check Route
=====================================

What:  Liveness/readiness probe for load balancers and container checks.
How:   Runs SELECT 1 against the app's database and reports how many
       procedures are registered.

Status levels:
    healthy     database reachable                  → HTTP 200
    unhealthy   database unreachable or unconfigured → HTTP 503
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from nodebase import __version__
from nodebase.rpc.app_router import get_router
from nodebase.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"model": HealthResponse}},
)
async def health_check(request: Request):
    db_status = "connected"
    database = getattr(request.app.state, "database", None)
    try:
        if database is None:
            raise RuntimeError("no database configured")
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    overall = "healthy" if db_status == "connected" else "unhealthy"
    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        procedures=len(get_router(request)),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(
        status_code=200 if overall == "healthy" else 503,
        content=body.model_dump(),
    )
