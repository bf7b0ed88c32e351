"""Freshness checks over the persisted feed records, plus a small in-memory
TTL cache used when running in passthrough mode.

The persistent store is the source of truth for freshness, so any number of
API workers share one view of what is cached. The in-memory ``ResponseCache``
is per worker; with --workers 2 a passthrough response may be fetched twice.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from storage import repository
from storage.models import as_utc, utc_now

NEWS_PARTIAL_HIT_RATIO = 0.5
TRENDING_MAX_RECORDS = 10
TRENDING_MIN_RECORDS = 5


@dataclass
class FreshnessResult:
    fresh: bool
    records: list = field(default_factory=list)


def is_fresh(timestamp: datetime, ttl_seconds: int, now: datetime | None = None) -> bool:
    """True iff ``now - timestamp < ttl``."""
    now = now or utc_now()
    return now - as_utc(timestamp) < timedelta(seconds=ttl_seconds)


async def check_weather(
    session: AsyncSession, city: str, ttl_seconds: int, now: datetime | None = None
) -> FreshnessResult:
    """Fresh iff the newest record for the city is within TTL."""
    record = await repository.latest_weather(session, city)
    if record is None or not is_fresh(record.last_updated, ttl_seconds, now):
        return FreshnessResult(fresh=False)
    return FreshnessResult(fresh=True, records=[record])


async def check_news(
    session: AsyncSession,
    category: str,
    limit: int,
    ttl_seconds: int,
    now: datetime | None = None,
) -> FreshnessResult:
    """Hit when at least half the requested articles are fresh.

    A hit serves only the cached subset, which may be shorter than ``limit``.
    """
    now = now or utc_now()
    since = now - timedelta(seconds=ttl_seconds)
    records = await repository.recent_news(session, category, since, limit)
    # The query is inclusive at the boundary; the freshness invariant is strict.
    records = [r for r in records if is_fresh(r.created_at, ttl_seconds, now)]
    return FreshnessResult(
        fresh=len(records) >= limit * NEWS_PARTIAL_HIT_RATIO,
        records=records,
    )


async def check_trending(
    session: AsyncSession,
    topic: str,
    platform: str,
    ttl_seconds: int,
    now: datetime | None = None,
) -> FreshnessResult:
    now = now or utc_now()
    since = now - timedelta(seconds=ttl_seconds)
    records = await repository.recent_trending(session, topic, platform, since, TRENDING_MAX_RECORDS)
    records = [r for r in records if is_fresh(r.timestamp, ttl_seconds, now)]
    return FreshnessResult(fresh=len(records) >= TRENDING_MIN_RECORDS, records=records)


class ResponseCache:
    """In-process TTL cache keyed by request, used in passthrough mode."""

    def __init__(self, clock=time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._store: dict[str, tuple[float, Any]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = 0.0

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() < expires_at:
            return value
        del self._store[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._store = {k: v for k, v in self._store.items() if v[0] > now}
            self._next_sweep = now + self._sweep_interval
        self._store[key] = (now + ttl_seconds, value)

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


response_cache = ResponseCache()
