"""Health check endpoints.

Provides:
- Basic liveness probe (/health)
- Dependency check (/health/ready)
"""

import time
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import Settings
from app.dependencies import get_app_settings, get_run_queue

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

_start_time = time.monotonic()


def _queue_mode(request: Request, settings: Settings) -> str:
    if get_run_queue(request) is not None:
        return "queue"
    return "unavailable" if settings.queue_configured else "inline"


@router.get("", response_model=dict[str, Any])
async def liveness(request: Request, settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Liveness probe with app name, version and how runs are executed."""
    worker = getattr(request.app.state, "run_worker", None)
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "queue": _queue_mode(request, settings),
        "worker_running": bool(worker and worker.running),
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/ready")
async def readiness(request: Request):
    """Pings the database; 503 when it is unreachable."""
    checks: dict[str, str] = {}
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        checks["database"] = "unavailable"

    healthy = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "checks": checks},
    )
