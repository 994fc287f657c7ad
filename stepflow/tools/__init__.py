"""Deterministic tools callable from workflow steps."""

from typing import Optional

import httpx

from ..config import ToolsConfig
from .cache import TTLCache
from .feed_discovery import COMMON_FEED_PATHS, FeedUrlDiscovery, extract_feed_links
from .feed_validation import FeedValidator, summarize_feed
from .registry import ToolRegistry, classify_error
from .web_search import BraveWebSearch

WEB_SEARCH = "web_search"
DISCOVER_FEED_URLS = "discover_feed_urls"
VALIDATE_FEED = "validate_feed"


def build_default_registry(
    config: Optional[ToolsConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolRegistry:
    """Registry with the built-in search and feed tools registered."""
    config = config or ToolsConfig()
    registry = ToolRegistry()
    registry.register(WEB_SEARCH, BraveWebSearch(config, transport=transport))
    registry.register(DISCOVER_FEED_URLS, FeedUrlDiscovery(config, transport=transport))
    registry.register(VALIDATE_FEED, FeedValidator(config, transport=transport))
    return registry


__all__ = [
    "BraveWebSearch",
    "COMMON_FEED_PATHS",
    "DISCOVER_FEED_URLS",
    "FeedUrlDiscovery",
    "FeedValidator",
    "TTLCache",
    "ToolRegistry",
    "VALIDATE_FEED",
    "WEB_SEARCH",
    "build_default_registry",
    "classify_error",
    "extract_feed_links",
    "summarize_feed",
]
