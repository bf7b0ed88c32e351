"""Tests for inbound rate limiters."""

from unittest.mock import AsyncMock, MagicMock

from services.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
    client_identifier,
)


class TestInMemoryRateLimiter:
    async def test_blocks_request_past_limit_then_resets(self):
        clock = [1000.0]
        limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60, clock=lambda: clock[0])

        first = await limiter.hit("/news:1.2.3.4")
        second = await limiter.hit("/news:1.2.3.4")
        third = await limiter.hit("/news:1.2.3.4")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert not third.allowed
        assert third.reset_at == 1060.0

        clock[0] = 1061.0
        assert (await limiter.hit("/news:1.2.3.4")).allowed

    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(max_requests=1)

        assert (await limiter.hit("a")).allowed
        assert (await limiter.hit("b")).allowed
        assert not (await limiter.hit("a")).allowed

    async def test_reset_windows_are_swept(self):
        clock = [0.0]
        limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60, clock=lambda: clock[0])
        for i in range(50):
            await limiter.hit(f"/weather:10.0.0.{i}")

        clock[0] = 61.0
        await limiter.hit("/weather:10.0.1.1")

        assert len(limiter) == 1

    async def test_headers(self):
        limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60, clock=lambda: 99.5)

        headers = (await limiter.hit("k")).headers

        assert headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "160",
        }


class TestRedisRateLimiter:
    def _client(self, count):
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[count, True])
        client = MagicMock()
        client.pipeline.return_value = pipe
        return client, pipe

    async def test_counts_in_shared_window(self):
        client, pipe = self._client(3)
        limiter = RedisRateLimiter(client, max_requests=5, window_seconds=60)

        result = await limiter.hit("/trending:10.0.0.1")

        assert result.allowed
        assert result.remaining == 2
        key = pipe.incr.call_args.args[0]
        assert key.startswith("ratelimit:/trending:10.0.0.1:")
        pipe.expire.assert_called_once_with(key, 60)

    async def test_over_limit(self):
        client, _ = self._client(6)
        limiter = RedisRateLimiter(client, max_requests=5, window_seconds=60)

        result = await limiter.hit("k")

        assert not result.allowed
        assert result.remaining == 0


def test_builder_defaults_to_in_memory():
    assert isinstance(build_rate_limiter(None, 60, 60), InMemoryRateLimiter)


class TestClientIdentifier:
    def test_prefers_first_forwarded_hop(self):
        headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1", "x-real-ip": "10.0.0.2"}

        assert client_identifier(headers, "127.0.0.1") == "203.0.113.9"

    def test_falls_back_to_real_ip_then_peer(self):
        assert client_identifier({"x-real-ip": "10.0.0.2"}, "127.0.0.1") == "10.0.0.2"
        assert client_identifier({}, "127.0.0.1") == "127.0.0.1"
        assert client_identifier({}, None) == "anonymous"
