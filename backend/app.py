"""FastAPI application entry point for the dashboard feeds API."""

import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from errors import RateLimitExceededError, error_body, register_error_handlers
from services.rate_limit import RateLimiter, build_rate_limiter, client_identifier
from storage.db import create_tables, dispose_engine

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

RATE_LIMITED_PATHS = {"/weather", "/news", "/trending"}


def create_app(rate_limiter: RateLimiter | None = None) -> FastAPI:
    app = FastAPI(title="Dashboard Feeds API", version="1.0.0")

    limiter = rate_limiter or build_rate_limiter(
        settings.redis_url,
        settings.rate_limit_max_requests,
        settings.rate_limit_window_seconds,
    )
    app.state.rate_limiter = limiter

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Inbound rate limiting, keyed by route + client
    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        path = request.url.path
        if path not in RATE_LIMITED_PATHS:
            return await call_next(request)

        peer = request.client.host if request.client else None
        key = f"{path}:{client_identifier(request.headers, peer)}"
        try:
            result = await limiter.hit(key)
        except Exception as e:
            logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return await call_next(request)

        if not result.allowed:
            exc = RateLimitExceededError()
            return JSONResponse(error_body(str(exc)), status_code=exc.status_code, headers=result.headers)

        response: Response = await call_next(request)
        response.headers.update(result.headers)
        return response

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.feeds import router as feeds_router
    from routes.health import router as health_router
    from routes.usage import router as usage_router

    app.include_router(health_router)
    app.include_router(feeds_router)
    app.include_router(usage_router)

    @app.on_event("startup")
    async def _startup() -> None:
        missing = settings.validate()
        if missing:
            logger.warning("Missing env vars (feeds may fail): %s", ", ".join(missing))
        if settings.is_passthrough:
            logger.info("Running in passthrough mode; the store is not used as a cache")
        await create_tables()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await limiter.close()
        await dispose_engine()

    return app


app = create_app()
