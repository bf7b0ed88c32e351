"""Dashboard feed routes for weather, news and trending topics.

Each route is a thin boundary over its service's fetch-or-cache flow; errors
are translated to JSON bodies by the handlers in errors.py.
"""

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.http import get_http_client
from services.news import get_news
from services.trending import get_trending
from services.weather import get_weather
from storage.db import get_session

router = APIRouter()


@router.get("/weather")
async def weather(
    city: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict:
    """Current conditions for a city."""
    return await get_weather(session, client, city)


@router.get("/news")
async def news(
    category: str | None = Query(None),
    limit: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict:
    """Latest articles for ai, tech or science."""
    return await get_news(session, client, category, limit)


@router.get("/trending")
async def trending(
    topic: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> dict:
    """Ranked community topics merged across subreddits."""
    return await get_trending(session, client, topic)
