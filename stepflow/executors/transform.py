"""Transform steps.

``passthrough`` hands its input on unchanged. The feed operations fan out one
tool call per item, run concurrently under a semaphore, and keep input order.
A failing item carries its error inline and never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..context import ExecutionContext
from ..contracts import TransformStep
from ..errors import StepValidationError
from ..tools import DISCOVER_FEED_URLS, VALIDATE_FEED, ToolRegistry
from .base import StepExecutor, StepOutcome

logger = logging.getLogger(__name__)


def _require_list(value: Any, field: str, step: TransformStep) -> List[Any]:
    if not isinstance(value, list):
        raise StepValidationError(
            f"Step {step.id} ({step.operation}) requires a list input '{field}'"
        )
    return value


class TransformExecutor(StepExecutor[TransformStep]):
    def __init__(self, registry: ToolRegistry, max_concurrency: int = 5) -> None:
        self.registry = registry
        self.max_concurrency = max(1, max_concurrency)

    async def execute(
        self, step: TransformStep, input: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        if step.operation == "passthrough":
            return StepOutcome(output=input)
        if step.operation == "resolve_feed_urls":
            feeds = await self._resolve_feed_urls(step, input)
        elif step.operation == "validate_feeds":
            feeds = await self._validate_feeds(step, input)
        elif step.operation == "validate_ranked_feeds":
            feeds = await self._validate_ranked_feeds(step, input)
        else:
            raise StepValidationError(f"Unknown transform operation: {step.operation}")
        logger.info(f"Step {step.id} {step.operation} produced {len(feeds)} feeds")
        return StepOutcome(output={"feeds": feeds})

    async def _gather(
        self, items: List[Any], handle: Callable[[Any], Awaitable[Any]]
    ) -> List[Any]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(item: Any) -> Any:
            async with semaphore:
                return await handle(item)

        return list(await asyncio.gather(*(_bounded(item) for item in items)))

    async def _call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool; on failure return ``{"ok": False, "error": ...}``."""
        result = await self.registry.invoke(name, args)
        if result.success and isinstance(result.data, dict):
            return {**result.data}
        return {"ok": False, "error": result.error or "Tool returned no data"}

    async def _resolve_feed_urls(
        self, step: TransformStep, input: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        candidates = _require_list(input.get("candidates"), "candidates", step)
        candidates = [
            c for c in candidates if isinstance(c, dict) and c.get("website_url")
        ]

        async def _resolve(candidate: Dict[str, Any]) -> Dict[str, Any]:
            website_url = candidate["website_url"]
            data = await self._call(DISCOVER_FEED_URLS, {"url": website_url})
            if data.get("ok") is False:
                return {
                    **candidate,
                    "rss_urls": [],
                    "site_url": website_url,
                    "error": data["error"],
                }
            return {
                **candidate,
                "rss_urls": data.get("rss_urls") or [],
                "site_url": data.get("site_url") or website_url,
            }

        return await self._gather(candidates, _resolve)

    async def _validate_feeds(
        self, step: TransformStep, input: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        resolved = input.get("resolved_feeds")
        feeds = _require_list(
            resolved.get("feeds") if isinstance(resolved, dict) else None,
            "resolved_feeds.feeds",
            step,
        )

        async def _validate_url(rss_url: str) -> Dict[str, Any]:
            return {"rss_url": rss_url, **await self._call(VALIDATE_FEED, {"url": rss_url})}

        async def _validate(feed: Any) -> Dict[str, Any]:
            feed = feed if isinstance(feed, dict) else {}
            rss_urls = feed.get("rss_urls")
            if not isinstance(rss_urls, list):
                rss_urls = []
            validations = [await _validate_url(url) for url in rss_urls]
            return {**feed, "validations": validations}

        return await self._gather(feeds, _validate)

    async def _validate_ranked_feeds(
        self, step: TransformStep, input: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        ranked = _require_list(input.get("ranked_feeds"), "ranked_feeds", step)
        ranked = [f for f in ranked if isinstance(f, dict) and f.get("rss_url")]

        async def _validate(feed: Dict[str, Any]) -> Dict[str, Any]:
            validation: Optional[Dict[str, Any]] = await self._call(
                VALIDATE_FEED, {"url": feed["rss_url"]}
            )
            return {**feed, "validation": validation}

        return await self._gather(ranked, _validate)
