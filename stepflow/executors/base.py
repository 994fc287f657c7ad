from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

from ..context import ExecutionContext
from ..contracts import TokenUsage

S = TypeVar("S")


class StepOutcome(BaseModel):
    """What an executor hands back to the orchestrator."""

    output: Any = None
    trace: Optional[Dict[str, Any]] = None
    token_usage: Optional[TokenUsage] = None
    cost: Optional[float] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None


class StepExecutor(ABC, Generic[S]):
    """Executes one variant of step template."""

    @abstractmethod
    async def execute(
        self, step: S, input: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        """Run ``step`` with its resolved ``input``; raise ``ExecutionError`` on failure."""
