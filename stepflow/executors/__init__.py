"""Step executors and the dispatch table over step variants."""

from __future__ import annotations

from typing import Optional

from ..config import StepflowConfig
from ..contracts import ModelCallStep, StepDefinition, ToolCallStep, TransformStep
from ..errors import StepValidationError
from ..llm import ModelClient, PydanticAIModelClient
from ..tools import ToolRegistry, build_default_registry
from .base import StepExecutor, StepOutcome
from .model_call import ModelCallExecutor, template_variables
from .tool_call import ToolCallExecutor
from .transform import TransformExecutor


class StepExecutors:
    """One executor per step variant."""

    def __init__(
        self,
        model_call: ModelCallExecutor,
        tool_call: ToolCallExecutor,
        transform: TransformExecutor,
    ) -> None:
        self.model_call = model_call
        self.tool_call = tool_call
        self.transform = transform

    @classmethod
    def build(
        cls,
        config: Optional[StepflowConfig] = None,
        model_client: Optional[ModelClient] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ) -> "StepExecutors":
        config = config or StepflowConfig()
        model_client = model_client or PydanticAIModelClient(config.model)
        tool_registry = tool_registry or build_default_registry(config.tools)
        return cls(
            model_call=ModelCallExecutor(
                model_client, config.model, config.retry.policy()
            ),
            tool_call=ToolCallExecutor(tool_registry),
            transform=TransformExecutor(
                tool_registry, max_concurrency=config.tools.max_concurrency
            ),
        )

    def executor_for(self, step: StepDefinition) -> StepExecutor:
        if isinstance(step, ModelCallStep):
            return self.model_call
        if isinstance(step, ToolCallStep):
            return self.tool_call
        if isinstance(step, TransformStep):
            return self.transform
        raise StepValidationError(f"Unsupported step type: {type(step).__name__}")


__all__ = [
    "ModelCallExecutor",
    "StepExecutor",
    "StepExecutors",
    "StepOutcome",
    "ToolCallExecutor",
    "TransformExecutor",
    "template_variables",
]
