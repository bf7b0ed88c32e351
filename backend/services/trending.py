"""Reddit trending client and the trending fetch-or-cache flow.

Public endpoints, no key required. Each topic fans out to a fixed set of
subreddits concurrently; a failing subreddit is logged and skipped. The
merged, ranked list replaces the stored snapshot for the topic.
"""

import asyncio
import logging
import uuid
from datetime import timedelta

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import NoUpstreamDataError, ValidationError
from services.cache import check_trending, response_cache
from services.http import get_json
from services.merge import CommunityPost, MergedTopic, merge_posts
from services.usage import record_usage
from storage import repository
from storage.models import TrendingRecord, as_utc, utc_now

logger = logging.getLogger(__name__)

REDDIT_HOT_URL = "https://www.reddit.com/r/{subreddit}/hot.json"
PROVIDER = "reddit"
PLATFORM = "reddit"
POSTS_PER_SOURCE = 10
PASSTHROUGH_TTL_SECONDS = 300

TOPIC_SOURCES = {
    "artificial-intelligence": ["artificial", "MachineLearning", "singularity"],
    "machine-learning": ["MachineLearning", "LocalLLaMA", "MLOps"],
    "technology": ["technology", "Futurology", "gadgets"],
}
DEFAULT_SOURCES = ["artificial", "technology"]
DEFAULT_TOPIC = "artificial-intelligence"


def parse_listing(data: dict, subreddit: str) -> list[CommunityPost]:
    posts = []
    for child in data.get("data", {}).get("children", []):
        post = child.get("data", {})
        if not post.get("title"):
            continue
        posts.append(
            CommunityPost(
                title=post["title"],
                source=post.get("subreddit") or subreddit,
                upvotes=int(post.get("ups", 0)),
                comment_count=int(post.get("num_comments", 0)),
                created_utc=float(post.get("created_utc", 0)),
                permalink=post.get("permalink", ""),
                url=post.get("url", ""),
            )
        )
    return posts


async def fetch_subreddit(
    client: httpx.AsyncClient, subreddit: str, timeout: float | None = None
) -> list[CommunityPost]:
    data = await get_json(
        client,
        REDDIT_HOT_URL.format(subreddit=subreddit),
        params={"limit": POSTS_PER_SOURCE},
        timeout=timeout,
        provider=f"r/{subreddit}",
    )
    return parse_listing(data, subreddit)


async def _fetch_source(
    client: httpx.AsyncClient, subreddit: str, timeout: float | None
) -> list[CommunityPost] | None:
    """Fetch one source. Returns None on failure so siblings keep running."""
    try:
        return await fetch_subreddit(client, subreddit, timeout)
    except Exception as e:
        logger.warning("Trending fetch failed for r/%s: %s", subreddit, e)
        return None


async def fan_out(
    client: httpx.AsyncClient, topic: str, timeout: float | None = None
) -> tuple[list[CommunityPost], list[str]]:
    """Fetch every source for ``topic`` concurrently.

    Returns posts in source order and the list of sources that failed.
    """
    sources = TOPIC_SOURCES.get(topic, DEFAULT_SOURCES)
    results = await asyncio.gather(
        *[_fetch_source(client, subreddit, timeout) for subreddit in sources]
    )

    posts: list[CommunityPost] = []
    failed = []
    for subreddit, result in zip(sources, results):
        if result is None:
            failed.append(subreddit)
        else:
            posts.extend(result)
    return posts, failed


def _validate_topic(topic: str | None) -> str:
    topic = topic or DEFAULT_TOPIC
    if topic not in TOPIC_SOURCES:
        raise ValidationError(
            "Invalid topic parameter",
            details={"topic": f"must be one of {sorted(TOPIC_SOURCES)}"},
        )
    return topic


def _item(record: TrendingRecord) -> dict:
    return {
        "id": record.id,
        "keyword": record.keyword,
        "category": record.category,
        "rank": record.rank,
        "volume": record.volume,
        "growth": record.growth,
        "platform": record.platform,
        "timestamp": as_utc(record.timestamp).isoformat(),
    }


async def _collect(client: httpx.AsyncClient, topic: str) -> list[MergedTopic]:
    posts, failed = await fan_out(client, topic)
    if not posts:
        raise NoUpstreamDataError("Failed to fetch trending data from Reddit")
    if failed:
        logger.info("Trending for %s merged without %s", topic, ", ".join(failed))
    return merge_posts(posts, topic)


async def get_trending(
    session: AsyncSession | None, client: httpx.AsyncClient, topic: str | None
) -> dict:
    """Serve trending topics, from the store while the snapshot is fresh."""
    topic = _validate_topic(topic)

    if settings.is_passthrough:
        return await _get_trending_passthrough(client, topic)

    freshness = await check_trending(session, topic, PLATFORM, settings.trending_ttl_seconds)
    if freshness.fresh:
        logger.info("Trending cache hit for %s", topic)
        await record_usage(session, "trending", PROVIDER, cached=True)
        return {"topics": [_item(r) for r in freshness.records], "cached": True}

    logger.info("Trending cache miss for %s, fanning out", topic)
    merged = await _collect(client, topic)

    now = utc_now()
    expires_at = now + timedelta(seconds=settings.trending_ttl_seconds)
    records = [
        TrendingRecord(
            id=str(uuid.uuid4()),
            topic=topic,
            keyword=entry.keyword,
            category=entry.category,
            rank=entry.rank,
            volume=entry.volume,
            growth=entry.growth,
            platform=PLATFORM,
            region="global",
            related_topics=entry.related_topics,
            timestamp=now,
            expires_at=expires_at,
        )
        for entry in merged
    ]
    saved = await repository.replace_trending(session, topic, PLATFORM, records)
    await record_usage(session, "trending", PROVIDER, cached=False)
    return {"topics": [_item(r) for r in saved], "cached": False}


async def _get_trending_passthrough(client: httpx.AsyncClient, topic: str) -> dict:
    key = f"trending:{topic}"
    cached = response_cache.get(key)
    if cached:
        return {**cached, "cached": True}

    merged = await _collect(client, topic)
    timestamp = utc_now().isoformat()
    topics = [
        {
            "id": str(uuid.uuid5(uuid.NAMESPACE_URL, entry.permalink or entry.keyword)),
            "keyword": entry.keyword,
            "category": entry.category,
            "rank": entry.rank,
            "volume": entry.volume,
            "growth": entry.growth,
            "platform": PLATFORM,
            "timestamp": timestamp,
        }
        for entry in merged
    ]
    result = {"topics": topics, "cached": False}
    response_cache.set(key, result, ttl_seconds=PASSTHROUGH_TTL_SECONDS)
    return result
