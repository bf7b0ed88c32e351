"""Centralized configuration: all env vars in one place."""

import os


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Provider credentials
        self.openweather_api_key: str | None = os.getenv("OPENWEATHER_API_KEY")
        self.newsapi_key: str | None = os.getenv("NEWSAPI_KEY") or os.getenv("NEWS_API_KEY")

        # Store
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./dashboard.db")
        # "database" (persisted freshness cache) or "passthrough" (stateless)
        self.cache_mode: str = os.getenv("CACHE_MODE", "database").lower()

        # Freshness windows
        self.weather_ttl_seconds: int = int(os.getenv("WEATHER_TTL_SECONDS", "600"))
        self.news_ttl_seconds: int = int(os.getenv("NEWS_TTL_SECONDS", "1800"))
        self.trending_ttl_seconds: int = int(os.getenv("TRENDING_TTL_SECONDS", "900"))

        # Per-call deadline for provider requests
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

        # Inbound rate limiting
        self.rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "60"))
        self.rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.redis_url: str | None = os.getenv("REDIS_URL")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_passthrough(self) -> bool:
        return self.cache_mode == "passthrough"

    def validate(self) -> list[str]:
        """Return list of missing provider credentials."""
        required = ["OPENWEATHER_API_KEY", "NEWSAPI_KEY"]
        return [var for var in required if not getattr(self, _attr_for(var))]


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "OPENWEATHER_API_KEY": "openweather_api_key",
        "NEWSAPI_KEY": "newsapi_key",
    }
    return mapping.get(env_var, env_var.lower())
