"""Outbound HTTP helpers shared by the provider clients."""

import asyncio
import logging
from collections.abc import AsyncIterator

import httpx

from config import settings
from errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "IntelliDash/1.0 (Dashboard App)",
}


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """FastAPI dependency: one pooled client per request."""
    async with httpx.AsyncClient(
        timeout=settings.upstream_timeout_seconds,
        headers=DEFAULT_HEADERS,
    ) as client:
        yield client


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict | None = None,
    timeout: float | None = None,
    provider: str = "upstream",
) -> dict:
    """GET ``url`` and decode JSON, bounded by an explicit deadline.

    Raises UpstreamError carrying the HTTP status for non-2xx responses, and
    UpstreamError without a status for transport failures or deadline expiry.
    Cancellation of the awaiting task propagates unchanged.
    """
    deadline = timeout if timeout is not None else settings.upstream_timeout_seconds
    try:
        resp = await asyncio.wait_for(client.get(url, params=params), timeout=deadline)
    except asyncio.TimeoutError as e:
        raise UpstreamError(f"{provider} request timed out after {deadline}s") from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"{provider} request failed: {e}") from e

    if not resp.is_success:
        raise UpstreamError(
            f"{provider} API error: {resp.status_code}",
            upstream_status=resp.status_code,
        )

    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamError(f"{provider} returned invalid JSON") from e
