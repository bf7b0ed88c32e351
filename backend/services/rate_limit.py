"""Fixed-window inbound rate limiting.

``InMemoryRateLimiter`` is exact for a single process. Set REDIS_URL to use
``RedisRateLimiter``, which keeps the window counter in Redis so every worker
shares it.
"""

import logging
import math
import time
from dataclasses import dataclass

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimiter:
    """Counts hits per key inside a fixed window."""

    def __init__(self, max_requests: int = 60, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def hit(self, key: str) -> RateLimitResult:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    def _result(self, count: int, reset_at: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=reset_at,
        )


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, max_requests: int = 60, window_seconds: int = 60, clock=time.time):
        super().__init__(max_requests, window_seconds)
        self._clock = clock
        # key -> (count, reset_at)
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_sweep = 0.0

    def _sweep(self, now: float) -> None:
        """Drop windows that have already reset, at most once per window."""
        if now < self._next_sweep:
            return
        self._windows = {k: v for k, v in self._windows.items() if v[1] >= now}
        self._next_sweep = now + self.window_seconds

    async def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        self._sweep(now)
        count, reset_at = self._windows.get(key, (0, 0.0))
        if now > reset_at:
            count, reset_at = 0, now + self.window_seconds
        if count >= self.max_requests:
            return self._result(count + 1, reset_at)
        count += 1
        self._windows[key] = (count, reset_at)
        return self._result(count, reset_at)

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimiter(RateLimiter):
    def __init__(self, client: redis.Redis, max_requests: int = 60, window_seconds: int = 60):
        super().__init__(max_requests, window_seconds)
        self._client = client

    @classmethod
    def from_url(cls, url: str, max_requests: int = 60, window_seconds: int = 60):
        return cls(redis.from_url(url), max_requests, window_seconds)

    async def hit(self, key: str) -> RateLimitResult:
        window = int(time.time() // self.window_seconds)
        redis_key = f"ratelimit:{key}:{window}"
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, self.window_seconds)
        count, _ = await pipe.execute()
        reset_at = (window + 1) * self.window_seconds
        return self._result(int(count), reset_at)

    async def close(self) -> None:
        await self._client.aclose()


def build_rate_limiter(redis_url: str | None, max_requests: int, window_seconds: int) -> RateLimiter:
    if redis_url:
        logger.info("Using Redis rate limiter")
        return RedisRateLimiter.from_url(redis_url, max_requests, window_seconds)
    return InMemoryRateLimiter(max_requests, window_seconds)


def client_identifier(headers, peer: str | None) -> str:
    """First forwarded-for hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or peer or "anonymous"
