"""Web search backed by the Brave Search API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from ..config import ToolsConfig
from ..errors import ToolError
from .cache import TTLCache

logger = logging.getLogger(__name__)

BRAVE_API_BASE = "https://api.search.brave.com/res/v1/web/search"
MAX_RESULTS = 20


def _freshness(recency_days: Optional[int]) -> str:
    if not recency_days or recency_days <= 0:
        return "py"
    if recency_days <= 1:
        return "pd"
    if recency_days <= 7:
        return "pw"
    if recency_days <= 31:
        return "pm"
    return "py"


def _retry_after_seconds(value: Optional[str], default: float = 60.0) -> float:
    """Delta-seconds `Retry-After` value; an HTTP-date or junk gives ``default``."""
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _is_valid_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class BraveWebSearch:
    """``web_search`` tool: query -> list of {title, url, snippet, source}."""

    def __init__(
        self,
        config: ToolsConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[TTLCache[List[Dict[str, Any]]]] = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._cache = cache or TTLCache(config.search_cache_ttl_seconds)

    async def __call__(
        self, query: str, limit: int = 10, recency_days: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        if not isinstance(query, str) or not query.strip():
            raise ToolError(
                "Query is required and must be a non-empty string", kind="invalid_input"
            )
        count = min(max(1, int(limit or 10)), MAX_RESULTS)
        key = (query, count, recency_days)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info(f"Search cache hit for query: {query[:50]}")
            return cached

        if not self.config.brave_api_key:
            raise ToolError(
                "BRAVE_SEARCH_API_KEY is required for web search",
                kind="missing_credential",
            )

        params = {
            "q": query.strip(),
            "count": str(count),
            "safesearch": "moderate",
            "freshness": _freshness(recency_days),
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.config.brave_api_key,
        }
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self.config.http_timeout_seconds
        ) as client:
            response = await client.get(BRAVE_API_BASE, params=params, headers=headers)

        if response.status_code == 401:
            raise ToolError("Invalid BRAVE_SEARCH_API_KEY", kind="auth")
        if response.status_code == 429:
            raise ToolError(
                "Search rate limit exceeded",
                kind="rate_limit",
                retry_after=_retry_after_seconds(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            raise ToolError(
                f"Brave API error: {response.status_code} {response.text[:200]}",
                kind="http_error",
            )

        payload = response.json()
        results = [
            {
                "title": item.get("title") or "",
                "url": item.get("url") or "",
                "snippet": item.get("description") or "",
                "source": (item.get("meta_url") or {}).get("hostname"),
            }
            for item in (payload.get("web") or {}).get("results") or []
        ]
        results = [r for r in results if _is_valid_url(r["url"])]
        self._cache.set(key, results)
        logger.info(f"Found {len(results)} search results for query: {query[:50]}")
        return results
