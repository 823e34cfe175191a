"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.huddle.config import get_settings
from src.huddle.core.database import get_engine
from src.huddle.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database, Redis, inference keys, and the summary worker."""
    settings = get_settings()
    checks: dict = {"database": "ok", "redis": "ok", "litellm": "ok", "summary_worker": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    if settings.REDIS_URL:
        try:
            redis = get_redis_pool()
            pong = await redis.ping()
            if not pong:
                checks["redis"] = "error"
                checks["redis_error"] = "PING did not return PONG"
        except Exception as e:
            checks["redis"] = "error"
            checks["redis_error"] = str(e)
    else:
        checks["redis"] = "disabled"

    if not settings.inference_configured():
        checks["litellm"] = "no_keys"

    worker = getattr(request.app.state, "summary_worker", None)
    if worker is None or not worker.running:
        checks["summary_worker"] = "stopped"

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 if all critical dependencies pass, 503 otherwise."""
    checks = await _check_dependencies(request)
    all_healthy = (
        checks.get("database") == "ok"
        and checks.get("redis") in ("ok", "disabled")
        and checks.get("litellm") in ("ok", "no_keys")
        and checks.get("summary_worker") == "ok"
    )

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
