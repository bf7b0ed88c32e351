"""Provider usage counters for quota planning."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.usage import usage_report
from storage.db import get_session

router = APIRouter()


@router.get("/usage")
async def usage(
    days: int = Query(7, ge=1, le=90),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Per-day request counts by endpoint and provider, newest first."""
    return {"items": await usage_report(session, days)}
