"""Health check endpoints.

Provides:
- Basic liveness probe (/health)
- Readiness with database and scheduler state (/health/ready)
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import text

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("", response_model=dict[str, Any])
async def liveness() -> dict[str, Any]:
    """
    Get API name and version.
    Used as a simple liveness probe.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
    }


@router.get("/ready", response_model=dict[str, Any])
async def readiness(request: Request) -> dict[str, Any]:
    """
    Readiness with dependency verification.
    Returns 503 if the database cannot be reached.
    """
    checks: dict[str, str] = {}

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    runtime = getattr(request.app.state, "runtime", None)
    checks["scheduler"] = "running" if runtime and runtime.scheduler.is_running else "stopped"

    if checks["database"] == "unavailable":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return {
        "status": "healthy",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        **checks,
    }
