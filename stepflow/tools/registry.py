"""Tool registry: name -> async callable, with a uniform result envelope."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..contracts import ToolMetadata, ToolResult
from ..errors import ToolError

logger = logging.getLogger(__name__)

Tool = Callable[..., Awaitable[Any]]


def classify_error(exc: BaseException) -> str:
    """Map an exception raised by a tool onto a coarse error kind."""
    if isinstance(exc, ToolError):
        return exc.kind
    if isinstance(exc, httpx.TransportError):
        return "network"
    if isinstance(exc, (TypeError, ValueError)):
        return "invalid_input"
    return "unknown"


class ToolRegistry:
    """Registry of deterministic tools callable from workflow steps."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, name: str, tool: Tool) -> None:
        self._tools[name] = tool

    def list_tools(self) -> List[str]:
        return list(self._tools)

    async def invoke(self, name: str, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Run tool ``name`` with ``args``. Failures come back as results, never raised."""
        started = time.perf_counter()
        args = args or {}

        def _elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(
                success=False,
                error=f"Tool not found: {name}",
                metadata=ToolMetadata(
                    tool_name=name, duration_ms=_elapsed(), error_kind="not_found"
                ),
            )

        logger.info(
            f"Executing tool {name} with args {json.dumps(args, default=str)[:200]}"
        )
        try:
            data = await tool(**args)
        except Exception as exc:
            kind = classify_error(exc)
            logger.warning(f"Tool {name} failed ({kind}): {exc}")
            return ToolResult(
                success=False,
                error=str(exc) or type(exc).__name__,
                metadata=ToolMetadata(
                    tool_name=name,
                    duration_ms=_elapsed(),
                    error_kind=kind,
                    retry_after=getattr(exc, "retry_after", None),
                ),
            )

        duration = _elapsed()
        logger.info(f"Tool {name} completed in {duration:.0f}ms")
        return ToolResult(
            success=True,
            data=data,
            metadata=ToolMetadata(tool_name=name, duration_ms=duration),
        )
