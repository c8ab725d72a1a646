"""Health check endpoint.

Reports which store, lock and escrow backends the process is running with,
and pings the database and Redis when those backends are selected.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text

from token_bazaar.logging_config import get_logger
from token_bazaar.schemas.marketplace import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its backends.",
)
async def health_check(request: Request) -> HealthResponse:
    state = request.app.state
    store_status = "memory"
    lock_status = "memory"

    database = getattr(state, "database", None)
    if database is not None:
        try:
            async with database.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            store_status = "healthy"
        except Exception as exc:
            store_status = f"unhealthy: {exc}"
            logger.error("health.db_check_failed", error=str(exc))

    redis = getattr(state, "redis", None)
    if redis is not None:
        try:
            await redis.ping()
            lock_status = "healthy"
        except Exception as exc:
            lock_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    degraded = store_status.startswith("unhealthy") or lock_status.startswith("unhealthy")
    return HealthResponse(
        status="degraded" if degraded else "ok",
        version=request.app.version,
        store=store_status,
        lock=lock_status,
        escrow="chain" if getattr(state, "escrow", None) is not None else "disabled",
    )
