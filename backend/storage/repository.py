"""Store operations used by the feed services.

Reads are filtered/sorted/limited selects; writes are create, atomic
upsert-by-unique-key (``INSERT .. ON CONFLICT``) and delete-by-filter.
Driver failures surface as ``PersistenceError``.
"""

import functools
import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import PersistenceError
from storage.models import ApiUsage, NewsRecord, TrendingRecord, WeatherRecord, city_key, utc_now

logger = logging.getLogger(__name__)


def _wrap_store_errors(fn):
    """Translate driver errors into PersistenceError, rolling back the session."""

    @functools.wraps(fn)
    async def wrapper(session: AsyncSession, *args, **kwargs):
        try:
            return await fn(session, *args, **kwargs)
        except SQLAlchemyError as e:
            await session.rollback()
            raise PersistenceError(f"Store unavailable during {fn.__name__}") from e

    return wrapper


def _insert(session: AsyncSession, model):
    """Dialect-specific INSERT that supports ON CONFLICT clauses."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------

@_wrap_store_errors
async def latest_weather(session: AsyncSession, city: str) -> WeatherRecord | None:
    """Most recent record stored for the requested city, case-insensitively."""
    stmt = (
        select(WeatherRecord)
        .where(WeatherRecord.query == city_key(city))
        .order_by(WeatherRecord.last_updated.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


@_wrap_store_errors
async def add_weather(session: AsyncSession, record: WeatherRecord) -> WeatherRecord:
    session.add(record)
    await session.commit()
    return record


# ---------------------------------------------------------------------------
# News
# ---------------------------------------------------------------------------

@_wrap_store_errors
async def recent_news(
    session: AsyncSession, category: str, since: datetime, limit: int
) -> list[NewsRecord]:
    stmt = (
        select(NewsRecord)
        .where(NewsRecord.category == category, NewsRecord.created_at >= since)
        .order_by(NewsRecord.published_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@_wrap_store_errors
async def save_news(session: AsyncSession, rows: list[dict]) -> list[NewsRecord]:
    """Insert each article unless its URL is already stored.

    Returns the stored record for every row, in input order. A row whose URL
    already exists yields the existing record unchanged.
    """
    now = utc_now()
    for row in rows:
        stmt = (
            _insert(session, NewsRecord)
            .values(id=str(uuid4()), created_at=now, **row)
            .on_conflict_do_nothing(index_elements=["url"])
        )
        await session.execute(stmt)
    await session.commit()

    urls = [row["url"] for row in rows]
    if not urls:
        return []
    result = await session.execute(select(NewsRecord).where(NewsRecord.url.in_(urls)))
    by_url = {record.url: record for record in result.scalars().all()}
    return [by_url[url] for url in dict.fromkeys(urls) if url in by_url]


# ---------------------------------------------------------------------------
# Trending
# ---------------------------------------------------------------------------

@_wrap_store_errors
async def recent_trending(
    session: AsyncSession, topic: str, platform: str, since: datetime, limit: int
) -> list[TrendingRecord]:
    stmt = (
        select(TrendingRecord)
        .where(
            TrendingRecord.topic == topic,
            TrendingRecord.platform == platform,
            TrendingRecord.timestamp >= since,
        )
        .order_by(TrendingRecord.rank.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


@_wrap_store_errors
async def replace_trending(
    session: AsyncSession, topic: str, platform: str, records: list[TrendingRecord]
) -> list[TrendingRecord]:
    """Drop the previous snapshot for (topic, platform) and store the new one."""
    await session.execute(
        delete(TrendingRecord).where(
            TrendingRecord.topic == topic,
            TrendingRecord.platform == platform,
        )
    )
    session.add_all(records)
    await session.commit()
    return records


# ---------------------------------------------------------------------------
# Usage counters
# ---------------------------------------------------------------------------

@_wrap_store_errors
async def increment_usage(
    session: AsyncSession, endpoint: str, provider: str, day: datetime
) -> None:
    stmt = _insert(session, ApiUsage).values(
        id=str(uuid4()),
        endpoint=endpoint,
        provider=provider,
        date=day,
        requests=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["endpoint", "provider", "date"],
        set_={"requests": ApiUsage.requests + 1},
    )
    await session.execute(stmt)
    await session.commit()


@_wrap_store_errors
async def usage_since(session: AsyncSession, since: datetime) -> list[ApiUsage]:
    stmt = (
        select(ApiUsage)
        .where(ApiUsage.date >= since)
        .order_by(ApiUsage.date.desc(), ApiUsage.endpoint, ApiUsage.provider)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
