"""Provider call counters for quota planning.

One row per (endpoint, provider, day); cache-served calls are counted under
``<endpoint>-cache``. Recording never fails the request it belongs to.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from storage import repository
from storage.models import as_utc, utc_now

logger = logging.getLogger(__name__)


def usage_key(endpoint: str, cached: bool) -> str:
    return f"{endpoint}-cache" if cached else endpoint


def start_of_day(moment: datetime | None = None) -> datetime:
    moment = moment or utc_now()
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


async def record_usage(
    session: AsyncSession,
    endpoint: str,
    provider: str,
    cached: bool,
    today: datetime | None = None,
) -> None:
    try:
        await repository.increment_usage(
            session, usage_key(endpoint, cached), provider, start_of_day(today)
        )
    except Exception as e:
        logger.warning("Failed to track API usage for %s/%s: %s", endpoint, provider, e)


async def usage_report(session: AsyncSession, days: int) -> list[dict]:
    since = start_of_day() - timedelta(days=days - 1)
    rows = await repository.usage_since(session, since)
    return [
        {
            "endpoint": row.endpoint,
            "provider": row.provider,
            "date": as_utc(row.date).date().isoformat(),
            "requests": row.requests,
        }
        for row in rows
    ]
