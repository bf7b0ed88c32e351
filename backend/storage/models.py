"""SQLAlchemy models for the persisted feed cache and provider usage counters."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def city_key(city: str) -> str:
    """Cache key for a requested city: trimmed and case-folded."""
    return city.strip().casefold()


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""


class WeatherRecord(Base):
    __tablename__ = "weather"
    __table_args__ = (Index("ix_weather_query_updated", "query", "last_updated"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # City as requested, normalized by city_key; location is the provider's name
    query: Mapped[str] = mapped_column(String(100))
    location: Mapped[str] = mapped_column(String(100))
    temperature: Mapped[float] = mapped_column(Float)
    condition: Mapped[str] = mapped_column(String(50))
    icon: Mapped[str] = mapped_column(String(200))
    humidity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    wind_speed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self) -> str:
        return f"<WeatherRecord(location={self.location}, temp={self.temperature})>"


class NewsRecord(Base):
    __tablename__ = "news"
    __table_args__ = (Index("ix_news_category_created", "category", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Dedup key: one row per article
    url: Mapped[str] = mapped_column(String(1000), unique=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    source: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(50))
    author: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    sentiment: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self) -> str:
        return f"<NewsRecord(url={self.url[:60]})>"


class TrendingRecord(Base):
    __tablename__ = "trending"
    __table_args__ = (Index("ix_trending_topic_platform", "topic", "platform"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # Requested topic; the cache key together with platform
    topic: Mapped[str] = mapped_column(String(50))
    keyword: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(50))
    rank: Mapped[int] = mapped_column(Integer)
    volume: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    growth: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    platform: Mapped[str] = mapped_column(String(30))
    region: Mapped[str] = mapped_column(String(30), default="global")
    related_topics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<TrendingRecord(rank={self.rank}, keyword={self.keyword[:30]})>"


class ApiUsage(Base):
    __tablename__ = "api_usage"
    __table_args__ = (UniqueConstraint("endpoint", "provider", "date", name="uq_api_usage_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    endpoint: Mapped[str] = mapped_column(String(50))
    provider: Mapped[str] = mapped_column(String(50))
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    requests: Mapped[int] = mapped_column(Integer, default=1)

    def __repr__(self) -> str:
        return f"<ApiUsage({self.endpoint}/{self.provider} {self.date:%Y-%m-%d}: {self.requests})>"
