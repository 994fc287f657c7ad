from datetime import datetime, timezone

import httpx
import pytest

from stepflow.config import ToolsConfig
from stepflow.errors import ToolError
from stepflow.tools import (
    BraveWebSearch,
    FeedUrlDiscovery,
    FeedValidator,
    TTLCache,
    ToolRegistry,
    build_default_registry,
    extract_feed_links,
)

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
<title>Example Blog</title><link>https://blog.example.com/</link>
<item><title>One</title><link>https://blog.example.com/1</link>
<pubDate>Mon, 05 Oct 2026 10:00:00 GMT</pubDate></item>
<item><title>Two</title><link>https://blog.example.com/2</link>
<pubDate>Thu, 01 Jan 2026 10:00:00 GMT</pubDate></item>
</channel></rss>
"""

NOW = datetime(2026, 10, 19, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Registry


@pytest.mark.asyncio
async def test_registry_reports_unknown_tool():
    result = await ToolRegistry().invoke("nope", {})
    assert not result.success
    assert result.error == "Tool not found: nope"


@pytest.mark.asyncio
async def test_registry_classifies_tool_failures():
    registry = ToolRegistry()

    async def _invalid(**kwargs):
        raise ValueError("bad input")

    async def _limited(**kwargs):
        raise ToolError("slow down", kind="rate_limit", retry_after=30)

    async def _offline(**kwargs):
        raise httpx.ConnectError("connection refused")

    async def _ok(value):
        return {"value": value}

    registry.register("invalid", _invalid)
    registry.register("limited", _limited)
    registry.register("offline", _offline)
    registry.register("ok", _ok)

    invalid = await registry.invoke("invalid", {})
    assert invalid.metadata.error_kind == "invalid_input"
    limited = await registry.invoke("limited", {})
    assert limited.metadata.error_kind == "rate_limit"
    assert limited.metadata.retry_after == 30
    offline = await registry.invoke("offline", {})
    assert offline.metadata.error_kind == "network"

    ok = await registry.invoke("ok", {"value": 3})
    assert ok.success
    assert ok.data == {"value": 3}
    assert ok.metadata.tool_name == "ok"

    bad_args = await registry.invoke("ok", {"unexpected": 1})
    assert bad_args.metadata.error_kind == "invalid_input"


def test_default_registry_registers_builtin_tools():
    registry = build_default_registry(ToolsConfig())
    assert registry.list_tools() == ["web_search", "discover_feed_urls", "validate_feed"]


def test_ttl_cache_expires_entries():
    now = [0.0]
    cache = TTLCache(ttl_seconds=600, clock=lambda: now[0])
    cache.set("k", [1])
    now[0] = 599
    assert cache.get("k") == [1]
    now[0] = 601
    assert cache.get("k") is None
    assert len(cache) == 0


# ---------------------------------------------------------------------------
# web_search


def _brave_handler(calls):
    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={
                "web": {
                    "results": [
                        {
                            "title": "Marginal Revolution",
                            "url": "https://marginalrevolution.com/",
                            "description": "Economics blog",
                            "meta_url": {"hostname": "marginalrevolution.com"},
                        },
                        {"title": "Broken", "url": "not a url", "description": ""},
                    ]
                }
            },
        )

    return _handler


@pytest.mark.asyncio
async def test_web_search_maps_results_and_caches():
    calls = []
    search = BraveWebSearch(
        ToolsConfig(brave_api_key="key"), transport=httpx.MockTransport(_brave_handler(calls))
    )

    results = await search(query="economics blogs", limit=50, recency_days=7)
    again = await search(query="economics blogs", limit=50, recency_days=7)

    assert results == [
        {
            "title": "Marginal Revolution",
            "url": "https://marginalrevolution.com/",
            "snippet": "Economics blog",
            "source": "marginalrevolution.com",
        }
    ]
    assert again == results
    assert len(calls) == 1
    request = calls[0]
    assert request.headers["X-Subscription-Token"] == "key"
    assert request.url.params["q"] == "economics blogs"
    assert request.url.params["count"] == "20"
    assert request.url.params["freshness"] == "pw"


@pytest.mark.asyncio
async def test_web_search_errors():
    missing_key = BraveWebSearch(ToolsConfig())
    with pytest.raises(ToolError) as exc_info:
        await missing_key(query="x")
    assert exc_info.value.kind == "missing_credential"

    with pytest.raises(ToolError) as exc_info:
        await BraveWebSearch(ToolsConfig(brave_api_key="k"))(query="  ")
    assert exc_info.value.kind == "invalid_input"

    limited = BraveWebSearch(
        ToolsConfig(brave_api_key="k"),
        transport=httpx.MockTransport(
            lambda request: httpx.Response(429, headers={"Retry-After": "12"})
        ),
    )
    with pytest.raises(ToolError) as exc_info:
        await limited(query="x")
    assert exc_info.value.kind == "rate_limit"
    assert exc_info.value.retry_after == 12


@pytest.mark.asyncio
async def test_web_search_rate_limit_with_http_date_retry_after():
    registry = ToolRegistry()
    registry.register(
        "web_search",
        BraveWebSearch(
            ToolsConfig(brave_api_key="k"),
            transport=httpx.MockTransport(
                lambda request: httpx.Response(
                    429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
                )
            ),
        ),
    )

    result = await registry.invoke("web_search", {"query": "x"})
    assert not result.success
    assert result.metadata.error_kind == "rate_limit"
    assert result.metadata.retry_after == 60.0


# ---------------------------------------------------------------------------
# discover_feed_urls

PAGE = """
<html><head>
<link rel="alternate" type="application/rss+xml" href="/feed.xml">
<link rel="alternate" type="application/atom+xml" href="https://blog.example.com/atom">
<link rel="alternate" type="text/html" href="/fr/">
<link rel="stylesheet" type="text/css" href="/style.css">
</head><body></body></html>
"""


def test_extract_feed_links_resolves_relative_hrefs():
    assert extract_feed_links(PAGE, "https://blog.example.com/posts/") == [
        "https://blog.example.com/feed.xml",
        "https://blog.example.com/atom",
    ]


def _site_handler(page_error: bool = False):
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if page_error:
                raise httpx.ConnectError("unreachable")
            return httpx.Response(200, html=PAGE)
        if request.url.path == "/feed":
            return httpx.Response(200, headers={"content-type": "application/rss+xml"})
        if request.url.path == "/rss":
            return httpx.Response(200, headers={"content-type": "text/html"})
        return httpx.Response(404)

    return _handler


@pytest.mark.asyncio
async def test_discover_feed_urls_combines_links_and_probes():
    discover = FeedUrlDiscovery(ToolsConfig(), transport=httpx.MockTransport(_site_handler()))
    result = await discover(url="https://blog.example.com/about")
    assert result == {
        "rss_urls": [
            "https://blog.example.com/feed.xml",
            "https://blog.example.com/atom",
            "https://blog.example.com/feed",
        ],
        "site_url": "https://blog.example.com",
    }


@pytest.mark.asyncio
async def test_discover_feed_urls_probes_when_page_fetch_fails():
    discover = FeedUrlDiscovery(
        ToolsConfig(), transport=httpx.MockTransport(_site_handler(page_error=True))
    )
    result = await discover(url="https://blog.example.com")
    assert result["rss_urls"] == ["https://blog.example.com/feed"]


@pytest.mark.asyncio
async def test_discover_feed_urls_rejects_non_http_urls():
    with pytest.raises(ToolError):
        await FeedUrlDiscovery(ToolsConfig())(url="ftp://example.com")


# ---------------------------------------------------------------------------
# validate_feed


@pytest.mark.asyncio
async def test_validate_feed_reports_metadata_and_freshness():
    validator = FeedValidator(
        ToolsConfig(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=RSS)),
        clock=lambda: NOW,
    )
    result = await validator(url="https://blog.example.com/feed")
    assert result["ok"] is True
    assert result["title"] == "Example Blog"
    assert result["site_url"] == "https://blog.example.com/"
    assert result["item_count"] == 2
    assert result["last_published_at"] == "2026-10-05T10:00:00+00:00"
    assert result["is_fresh"] is True

    stale = await validator(url="https://blog.example.com/feed", freshness_days=7)
    assert stale["is_fresh"] is False


@pytest.mark.asyncio
async def test_validate_feed_rejects_non_feeds():
    validator = FeedValidator(
        ToolsConfig(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="not a feed")),
    )
    result = await validator(url="https://example.com/feed")
    assert result["ok"] is False
    assert result["error"] == "Feed appears inactive or invalid"

    missing = FeedValidator(
        ToolsConfig(), transport=httpx.MockTransport(lambda request: httpx.Response(404))
    )
    assert (await missing(url="https://example.com/feed"))["ok"] is False


@pytest.mark.asyncio
async def test_validate_feed_retries_network_errors_once():
    attempts = []

    def _flaky(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("reset")
        return httpx.Response(200, content=RSS)

    validator = FeedValidator(
        ToolsConfig(), transport=httpx.MockTransport(_flaky), clock=lambda: NOW
    )
    assert (await validator(url="https://blog.example.com/feed"))["ok"] is True
    assert len(attempts) == 2

    def _down(request):
        raise httpx.ConnectError("down")

    offline = FeedValidator(ToolsConfig(), transport=httpx.MockTransport(_down))
    result = await offline(url="https://blog.example.com/feed")
    assert result["ok"] is False
    assert result["error"].startswith("Network error:")
