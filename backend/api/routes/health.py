"""Health check endpoint."""

import time
from typing import Any

from fastapi import APIRouter, Request
from sqlalchemy import text
import logging

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()


@router.get("", response_model=dict[str, Any])
async def health_check(request: Request) -> dict[str, Any]:
    """
    Liveness probe with a database ping.
    """
    settings = get_settings()
    checks: dict[str, str] = {}

    try:
        async with request.app.state.db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok" if all(v == "ok" for v in checks.values()) else "degraded",
        "checks": checks,
        "uptimeSeconds": round(time.monotonic() - _start_time, 1),
    }
