"""NewsAPI client and the news fetch-or-cache flow.

Requires NEWSAPI_KEY (NEWS_API_KEY is accepted too). Articles are persisted
once per URL; a category is served from the store while at least half of the
requested articles are younger than NEWS_TTL_SECONDS.
"""

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import httpx
from dateutil import parser as date_parser
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import ConfigurationError, UpstreamError, ValidationError
from services.cache import check_news, response_cache
from services.http import get_json
from services.usage import record_usage
from storage import repository
from storage.models import NewsRecord, as_utc, utc_now

logger = logging.getLogger(__name__)

NEWSAPI_URL = "https://newsapi.org/v2/top-headlines"
PROVIDER = "newsapi"

# Our categories → NewsAPI categories
CATEGORY_MAP = {
    "ai": "technology",
    "tech": "technology",
    "science": "science",
}
AI_QUERY = "artificial intelligence OR AI OR machine learning"

DEFAULT_CATEGORY = "tech"
DEFAULT_LIMIT = 10
MAX_LIMIT = 50


@dataclass
class NewsArticle:
    title: str
    description: str | None
    url: str
    image_url: str | None
    source: str
    author: str | None
    published_at: datetime


def _parse_published(value: str | None) -> datetime:
    """Lenient publication-time parse; unparseable values fall back to now."""
    if not value:
        return utc_now()
    try:
        return as_utc(date_parser.parse(value)).astimezone(timezone.utc)
    except (ValueError, OverflowError):
        logger.warning("Unparseable publishedAt %r, using current time", value)
        return utc_now()


def parse_articles(data: dict) -> list[NewsArticle]:
    return [
        NewsArticle(
            title=item.get("title") or "",
            description=item.get("description"),
            url=item["url"],
            image_url=item.get("urlToImage"),
            source=(item.get("source") or {}).get("name") or "Unknown",
            author=item.get("author"),
            published_at=_parse_published(item.get("publishedAt")),
        )
        for item in data.get("articles", [])
        if item.get("url")
    ]


async def fetch_articles(
    client: httpx.AsyncClient,
    category: str,
    limit: int,
    api_key: str,
    timeout: float | None = None,
) -> list[NewsArticle]:
    """Fetch top headlines for one of our categories. No deduplication."""
    params = {
        "category": CATEGORY_MAP.get(category, "technology"),
        "language": "en",
        "pageSize": str(limit),
        "apiKey": api_key,
    }
    if category == "ai":
        params["q"] = AI_QUERY

    data = await get_json(client, NEWSAPI_URL, params=params, timeout=timeout, provider="NewsAPI")
    if data.get("status") != "ok":
        raise UpstreamError(f"NewsAPI returned error status: {data.get('message', data.get('status'))}")
    return parse_articles(data)


def validate_query(category: str | None, limit: str | int | None) -> tuple[str, int]:
    errors = {}
    category = category or DEFAULT_CATEGORY
    if category not in CATEGORY_MAP:
        errors["category"] = f"must be one of {sorted(CATEGORY_MAP)}"

    if limit is None or limit == "":
        parsed_limit = DEFAULT_LIMIT
    else:
        try:
            parsed_limit = int(limit)
        except (TypeError, ValueError):
            parsed_limit = 0
        if not 1 <= parsed_limit <= MAX_LIMIT:
            errors["limit"] = f"must be an integer between 1 and {MAX_LIMIT}"

    if errors:
        raise ValidationError("Invalid parameters", details=errors)
    return category, parsed_limit


def _item(record: NewsRecord) -> dict:
    return {
        "id": record.id,
        "title": record.title,
        "description": record.description,
        "url": record.url,
        "imageUrl": record.image_url,
        "source": record.source,
        "category": record.category,
        "author": record.author,
        "publishedAt": as_utc(record.published_at).isoformat(),
        "sentiment": record.sentiment,
    }


async def get_news(
    session: AsyncSession | None,
    client: httpx.AsyncClient,
    category: str | None,
    limit: str | int | None,
) -> dict:
    """Serve news for a category, from the store when enough is fresh."""
    if not settings.newsapi_key:
        raise ConfigurationError("NewsAPI key not configured")
    category, limit = validate_query(category, limit)

    if settings.is_passthrough:
        return await _get_news_passthrough(client, category, limit)

    stored_category = CATEGORY_MAP[category]
    freshness = await check_news(session, stored_category, limit, settings.news_ttl_seconds)
    if freshness.fresh:
        logger.info(
            "News cache hit for %s (%d/%d articles)", category, len(freshness.records), limit
        )
        await record_usage(session, "news", PROVIDER, cached=True)
        items = [_item(r) for r in freshness.records]
        return {"items": items, "cached": True, "total": len(items)}

    logger.info("News cache miss for %s, calling provider", category)
    try:
        articles = await fetch_articles(client, category, limit, settings.newsapi_key)
    except UpstreamError as e:
        logger.error("News upstream failure for category=%s limit=%d: %s", category, limit, e)
        raise UpstreamError("Failed to fetch news data", e.upstream_status) from e

    rows = [
        {**asdict(article), "category": stored_category, "sentiment": None}
        for article in articles[:limit]
    ]
    saved = await repository.save_news(session, rows)
    await record_usage(session, "news", PROVIDER, cached=False)
    items = [_item(r) for r in saved]
    return {"items": items, "cached": False, "total": len(items)}


async def _get_news_passthrough(client: httpx.AsyncClient, category: str, limit: int) -> dict:
    key = f"news:{category}:{limit}"
    cached = response_cache.get(key)
    if cached:
        return {**cached, "cached": True}

    try:
        articles = await fetch_articles(client, category, limit, settings.newsapi_key)
    except UpstreamError as e:
        logger.error("News upstream failure for category=%s limit=%d: %s", category, limit, e)
        raise UpstreamError("Failed to fetch news data", e.upstream_status) from e

    items = [
        {
            "id": str(uuid.uuid5(uuid.NAMESPACE_URL, article.url)),
            "title": article.title,
            "description": article.description,
            "url": article.url,
            "imageUrl": article.image_url,
            "source": article.source,
            "category": CATEGORY_MAP[category],
            "author": article.author,
            "publishedAt": article.published_at.isoformat(),
            "sentiment": None,
        }
        for article in articles[:limit]
    ]
    result = {"items": items, "cached": False, "total": len(items)}
    response_cache.set(key, result, ttl_seconds=settings.news_ttl_seconds)
    return result
