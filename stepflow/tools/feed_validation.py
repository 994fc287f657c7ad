"""Fetch and parse a feed to report whether it is live and fresh."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

import feedparser
import httpx

from ..config import ToolsConfig
from ..errors import ToolError
from ..utils.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

NETWORK_RETRY = RetryPolicy(max_attempts=2, initial_delay=1.0, max_delay=1.0)


def _latest_entry_date(parsed: Any) -> Optional[datetime]:
    latest: Optional[datetime] = None
    for entry in parsed.entries:
        stamp = entry.get("published_parsed") or entry.get("updated_parsed")
        if not stamp:
            continue
        published = datetime.fromtimestamp(calendar.timegm(stamp), tz=timezone.utc)
        if latest is None or published > latest:
            latest = published
    return latest


def summarize_feed(
    content: bytes, freshness_days: Optional[float], now: datetime
) -> Dict[str, Any]:
    """Turn raw feed bytes into the validation record."""
    parsed = feedparser.parse(content)
    title = parsed.feed.get("title") or None
    item_count = len(parsed.entries)
    last_published = _latest_entry_date(parsed)

    is_fresh = True
    if last_published and freshness_days:
        is_fresh = now - last_published <= timedelta(days=freshness_days)

    ok = bool(title) and item_count > 0
    return {
        "ok": ok,
        "title": title,
        "site_url": parsed.feed.get("link") or None,
        "last_published_at": last_published.isoformat() if last_published else None,
        "item_count": item_count,
        "is_fresh": is_fresh,
        "error": None if ok else "Feed appears inactive or invalid",
    }


class FeedValidator:
    """``validate_feed`` tool: feed URL -> {ok, title, last_published_at, ...}."""

    def __init__(
        self,
        config: ToolsConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        retry_policy: RetryPolicy = NETWORK_RETRY,
    ) -> None:
        self.config = config
        self._transport = transport
        self._clock = clock
        self._retry_policy = retry_policy

    async def _fetch(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport,
            headers={"User-Agent": self.config.user_agent},
            timeout=self.config.http_timeout_seconds,
            follow_redirects=True,
        ) as client:
            return await client.get(url)

    async def __call__(self, url: str, freshness_days: Optional[float] = 30) -> Dict[str, Any]:
        if not isinstance(url, str) or not url:
            raise ToolError("URL is required and must be a string", kind="invalid_input")
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ToolError(f"Invalid URL format: {url}", kind="invalid_input")

        try:
            response = await retry_async(
                lambda: self._fetch(url),
                self._retry_policy,
                lambda exc: isinstance(exc, httpx.TransportError),
                label=f"Feed fetch {url}",
            )
        except httpx.TransportError as exc:
            return {"ok": False, "error": f"Network error: {exc}"}

        if not response.is_success:
            return {"ok": False, "error": f"HTTP {response.status_code} fetching feed"}

        result = summarize_feed(response.content, freshness_days, self._clock())
        logger.info(
            f"Validated feed {url}: ok={result['ok']} items={result['item_count']}"
        )
        return result
