"""Discover RSS/Atom feed URLs for a website."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from ..config import ToolsConfig
from ..errors import ToolError

logger = logging.getLogger(__name__)

COMMON_FEED_PATHS = (
    "/feed",
    "/rss",
    "/atom.xml",
    "/feed.xml",
    "/index.xml",
    "/rss.xml",
    "/feeds/all.rss",
    "/blog/feed",
    "/blog/rss",
)

FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml", "text/xml")


def extract_feed_links(html: str, base_url: str) -> List[str]:
    """Return absolute feed URLs advertised via ``<link rel="alternate">``."""
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    for tag in soup.find_all("link"):
        rel = tag.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "alternate" not in [r.lower() for r in rel]:
            continue
        href = tag.get("href")
        if href and (tag.get("type") or "").lower() in FEED_LINK_TYPES:
            links.append(urljoin(base_url, href))
    return links


class FeedUrlDiscovery:
    """``discover_feed_urls`` tool: website URL -> {rss_urls, site_url}."""

    def __init__(
        self, config: ToolsConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.config = config
        self._transport = transport

    async def __call__(self, url: str) -> Dict[str, Any]:
        if not isinstance(url, str) or not url:
            raise ToolError("URL is required and must be a string", kind="invalid_input")
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ToolError(f"Invalid URL format: {url}", kind="invalid_input")
        site_url = f"{parts.scheme}://{parts.netloc}"

        found: Dict[str, None] = {}
        headers = {"User-Agent": self.config.user_agent}
        async with httpx.AsyncClient(
            transport=self._transport, headers=headers, follow_redirects=True
        ) as client:
            try:
                response = await client.get(
                    url,
                    headers={"Accept": "text/html,application/xhtml+xml"},
                    timeout=self.config.page_timeout_seconds,
                )
                if response.is_success:
                    for link in extract_feed_links(response.text, str(response.url)):
                        found.setdefault(link)
            except httpx.HTTPError as exc:
                # Common paths are still probed when the page itself is unreachable.
                logger.warning(f"Error fetching {url}: {exc}")

            for path in COMMON_FEED_PATHS:
                candidate = urljoin(site_url, path)
                if candidate in found:
                    continue
                try:
                    response = await client.head(
                        candidate, timeout=self.config.probe_timeout_seconds
                    )
                except httpx.HTTPError:
                    continue
                content_type = response.headers.get("content-type", "").lower()
                if response.is_success and any(
                    marker in content_type for marker in ("xml", "rss", "atom")
                ):
                    found.setdefault(candidate)

        rss_urls = list(found)
        logger.info(f"Found {len(rss_urls)} feed URLs for {site_url}")
        return {"rss_urls": rss_urls, "site_url": site_url}
