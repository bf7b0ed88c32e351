"""Merge community posts from several sources into one ranked trending list."""

import json
from dataclasses import dataclass
from datetime import datetime

from storage.models import utc_now

MAX_TOPICS = 15
MAX_KEYWORD_LENGTH = 200

# Subreddit → trending category label
SOURCE_CATEGORIES = {
    "artificial": "artificial-intelligence",
    "MachineLearning": "artificial-intelligence",
    "singularity": "artificial-intelligence",
    "LocalLLaMA": "artificial-intelligence",
    "MLOps": "artificial-intelligence",
    "technology": "technology",
    "Futurology": "technology",
    "gadgets": "technology",
}


@dataclass
class CommunityPost:
    """A normalized upstream post, before merging."""

    title: str
    source: str
    upvotes: int
    comment_count: int
    created_utc: float
    permalink: str
    url: str

    @property
    def engagement(self) -> int:
        return self.upvotes + 2 * self.comment_count


@dataclass
class MergedTopic:
    keyword: str
    category: str
    rank: int
    volume: int
    growth: float
    source: str
    permalink: str

    @property
    def related_topics(self) -> str:
        return json.dumps([self.source, self.permalink])


def dedupe_by_title(posts: list[CommunityPost]) -> list[CommunityPost]:
    """Keep the first post for each trimmed, lower-cased title."""
    seen: set[str] = set()
    unique = []
    for post in posts:
        key = post.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(post)
    return unique


def growth_from_age(age_hours: float) -> float:
    """Recency decay: 100 under an hour old, then -5 per hour, floored at 0."""
    if age_hours < 1:
        return 100.0
    return round(max(0.0, 100 - 5 * age_hours), 1)


def merge_posts(
    posts: list[CommunityPost], topic: str, now: datetime | None = None
) -> list[MergedTopic]:
    now = now or utc_now()
    # sorted() is stable, so equal scores keep arrival order
    ranked = sorted(dedupe_by_title(posts), key=lambda p: p.engagement, reverse=True)

    merged = []
    for index, post in enumerate(ranked[:MAX_TOPICS]):
        age_hours = (now.timestamp() - post.created_utc) / 3600
        merged.append(
            MergedTopic(
                keyword=post.title[:MAX_KEYWORD_LENGTH],
                category=SOURCE_CATEGORIES.get(post.source, topic),
                rank=index + 1,
                volume=post.upvotes + post.comment_count,
                growth=growth_from_age(age_hours),
                source=post.source,
                permalink=post.permalink,
            )
        )
    return merged
