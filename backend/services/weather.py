"""OpenWeatherMap client and the weather fetch-or-cache flow.

Requires OPENWEATHER_API_KEY. Current conditions are cached per city for
WEATHER_TTL_SECONDS (10 minutes by default).
"""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import ConfigurationError, NotFoundError, UpstreamError, ValidationError
from services.cache import check_weather, response_cache
from services.http import get_json
from services.usage import record_usage
from storage import repository
from storage.models import WeatherRecord, as_utc, city_key, utc_now

logger = logging.getLogger(__name__)

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
ICON_URL = "https://openweathermap.org/img/wn/{icon}@2x.png"
PROVIDER = "openweathermap"
MAX_CITY_LENGTH = 100


@dataclass
class WeatherReading:
    location: str
    temperature: float
    condition: str
    icon: str
    humidity: int | None = None
    wind_speed: float | None = None


def parse_weather(data: dict) -> WeatherReading:
    """Project an OpenWeatherMap current-conditions payload."""
    conditions = data.get("weather") or [{}]
    primary = conditions[0]
    main = data.get("main", {})
    return WeatherReading(
        location=data["name"],
        temperature=float(main["temp"]),
        condition=primary.get("main") or "Unknown",
        icon=ICON_URL.format(icon=primary.get("icon")),
        humidity=main.get("humidity"),
        wind_speed=(data.get("wind") or {}).get("speed"),
    )


async def fetch_weather(
    client: httpx.AsyncClient, city: str, api_key: str, timeout: float | None = None
) -> WeatherReading:
    """Fetch current conditions for a city. Unknown city raises NotFoundError."""
    try:
        data = await get_json(
            client,
            OPENWEATHER_URL,
            params={"q": city, "appid": api_key, "units": "metric"},
            timeout=timeout,
            provider="OpenWeather",
        )
    except UpstreamError as e:
        if e.upstream_status == 404:
            raise NotFoundError("City not found") from e
        raise
    return parse_weather(data)


def _validate_city(city: str | None) -> str:
    city = (city or "").strip()
    if not city or len(city) > MAX_CITY_LENGTH:
        raise ValidationError(
            "Invalid city parameter",
            details={"city": f"must be 1-{MAX_CITY_LENGTH} characters"},
        )
    return city


def _to_response(record: WeatherRecord, cached: bool) -> dict:
    return {
        "location": record.location,
        "temp": round(record.temperature),
        "condition": record.condition,
        "icon": record.icon,
        "fetchedAt": as_utc(record.last_updated).isoformat(),
        "cached": cached,
    }


async def get_weather(
    session: AsyncSession | None, client: httpx.AsyncClient, city: str | None
) -> dict:
    """Serve current weather for ``city``, from the store when fresh."""
    if not settings.openweather_api_key:
        raise ConfigurationError("OpenWeather API key not configured")
    city = _validate_city(city)

    if settings.is_passthrough:
        return await _get_weather_passthrough(client, city)

    freshness = await check_weather(session, city, settings.weather_ttl_seconds)
    if freshness.fresh:
        logger.info("Weather cache hit for %s", city)
        await record_usage(session, "weather", PROVIDER, cached=True)
        return _to_response(freshness.records[0], cached=True)

    logger.info("Weather cache miss for %s, calling provider", city)
    try:
        reading = await fetch_weather(client, city, settings.openweather_api_key)
    except UpstreamError as e:
        logger.error("Weather upstream failure for city=%s: %s", city, e)
        raise UpstreamError("Failed to fetch weather data", e.upstream_status) from e

    now = utc_now()
    record = await repository.add_weather(
        session,
        WeatherRecord(
            query=city_key(city),
            location=reading.location,
            temperature=reading.temperature,
            condition=reading.condition,
            icon=reading.icon,
            humidity=reading.humidity,
            wind_speed=reading.wind_speed,
            last_updated=now,
            created_at=now,
        ),
    )
    await record_usage(session, "weather", PROVIDER, cached=False)
    return _to_response(record, cached=False)


async def _get_weather_passthrough(client: httpx.AsyncClient, city: str) -> dict:
    key = f"weather:{city_key(city)}"
    cached = response_cache.get(key)
    if cached:
        return {**cached, "cached": True}

    try:
        reading = await fetch_weather(client, city, settings.openweather_api_key)
    except UpstreamError as e:
        logger.error("Weather upstream failure for city=%s: %s", city, e)
        raise UpstreamError("Failed to fetch weather data", e.upstream_status) from e

    result = {
        "location": reading.location,
        "temp": round(reading.temperature),
        "condition": reading.condition,
        "icon": reading.icon,
        "fetchedAt": utc_now().isoformat(),
        "cached": False,
    }
    response_cache.set(key, result, ttl_seconds=settings.weather_ttl_seconds)
    return result
