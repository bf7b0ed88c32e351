"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from storage.db import get_session, ping

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check, no external calls."""
    return {"status": "ok", "service": "dashboard-api", "commit": settings.git_sha}


@router.get("/health")
async def health(session: AsyncSession = Depends(get_session)) -> dict:
    """Deep health check that verifies the store answers."""
    result = {
        "status": "ok",
        "service": "dashboard-api",
        "commit": settings.git_sha,
        "cache_mode": settings.cache_mode,
    }

    if await ping(session):
        result["database"] = "connected"
    else:
        result["status"] = "degraded"
        result["database"] = "error"

    missing = settings.validate()
    if missing:
        result["missing_credentials"] = missing

    return result
