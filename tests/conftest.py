"""Shared fixtures: in-memory store, fake upstreams and an ASGI test client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENWEATHER_API_KEY", "test-openweather-key")
os.environ.setdefault("NEWSAPI_KEY", "test-newsapi-key")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app import create_app  # noqa: E402
from config import settings  # noqa: E402
from services.cache import response_cache  # noqa: E402
from services.http import get_http_client  # noqa: E402
from services.rate_limit import InMemoryRateLimiter  # noqa: E402
from storage.db import get_session  # noqa: E402
from storage.models import Base  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Each test starts in database mode with credentials and a clean response cache."""
    monkeypatch.setattr(settings, "cache_mode", "database")
    monkeypatch.setattr(settings, "openweather_api_key", "test-openweather-key")
    monkeypatch.setattr(settings, "newsapi_key", "test-newsapi-key")
    response_cache.clear()
    yield
    response_cache.clear()


@pytest.fixture
async def db_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


class FakeUpstream:
    """Routes outbound requests to canned responses and records every call."""

    def __init__(self):
        self.routes: dict[str, tuple[int, object, Exception | None]] = {}
        self.calls: list[httpx.Request] = []

    def add(self, path_fragment: str, status: int = 200, json=None, exc: Exception | None = None):
        self.routes[path_fragment] = (status, json, exc)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        for fragment, (status, body, exc) in self.routes.items():
            if fragment in str(request.url):
                if exc is not None:
                    raise exc
                return httpx.Response(status, json=body if body is not None else {})
        return httpx.Response(404, json={"message": "no fake route"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, fragment: str) -> list[httpx.Request]:
        return [c for c in self.calls if fragment in str(c.url)]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def rate_limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_requests=1000, window_seconds=60)


@pytest.fixture
def app(session_maker, upstream, rate_limiter):
    """App wired to the in-memory store and fake upstreams."""
    app = create_app(rate_limiter=rate_limiter)

    async def override_get_session():
        async with session_maker() as session:
            yield session

    async def override_get_http_client():
        async with upstream.client() as client:
            yield client

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_http_client] = override_get_http_client
    return app


@pytest.fixture
async def api(app):
    """ASGI client for the wired app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
