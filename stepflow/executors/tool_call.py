from __future__ import annotations

from typing import Any, Dict

from ..context import ExecutionContext
from ..contracts import ToolCallStep, ToolTrace
from ..errors import StepValidationError, ToolExecutionError
from ..tools import ToolRegistry
from .base import StepExecutor, StepOutcome


class ToolCallExecutor(StepExecutor[ToolCallStep]):
    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def execute(
        self, step: ToolCallStep, input: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        if not step.tool_name:
            raise StepValidationError(f"Step {step.id} has no tool_name")

        result = await self.registry.invoke(step.tool_name, input)
        trace = ToolTrace(
            tool_name=step.tool_name,
            args=input,
            result=result.data if result.success else result.error,
            duration_ms=result.metadata.duration_ms,
            success=result.success,
        )
        if not result.success:
            raise ToolExecutionError(
                f"Tool {step.tool_name} failed: {result.error}", trace=trace
            )
        return StepOutcome(output=result.data, trace=trace.model_dump(mode="json"))
