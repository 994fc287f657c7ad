from __future__ import annotations

import logging
from typing import Any, Dict

from ..config import ModelConfig
from ..context import ExecutionContext
from ..contracts import ModelCallStep
from ..errors import StepValidationError, TransientExternalError
from ..llm import ModelClient, ModelRequest
from ..prompts import format_system_prompt, format_user_prompt
from ..utils.retry import RetryPolicy, retry_async
from .base import StepExecutor, StepOutcome

logger = logging.getLogger(__name__)


def template_variables(
    input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    """Variables visible to prompt templates; step input keys win on clashes."""
    return {**context.as_mapping(), "input": input, **input}


class ModelCallExecutor(StepExecutor[ModelCallStep]):
    def __init__(
        self, client: ModelClient, config: ModelConfig, retry_policy: RetryPolicy
    ) -> None:
        self.client = client
        self.config = config
        self.retry_policy = retry_policy

    async def execute(
        self, step: ModelCallStep, input: Dict[str, Any], context: ExecutionContext
    ) -> StepOutcome:
        variables = template_variables(input, context)
        system_prompt = format_system_prompt(step.system_prompt_template, variables)
        user_prompt = format_user_prompt(step.user_prompt_template, variables)
        if not system_prompt and not user_prompt:
            raise StepValidationError(f"Step {step.id} produced empty prompts")

        request = ModelRequest(
            model=step.model_name or self.config.default_model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            output_schema=step.output_schema,
            temperature=step.temperature,
            max_tokens=step.max_tokens,
        )
        response = await retry_async(
            lambda: self.client.invoke(request),
            self.retry_policy,
            lambda exc: isinstance(exc, TransientExternalError),
            label=f"Model call for step {step.id}",
        )
        logger.info(
            f"Step {step.id} model {request.model} used {response.tokens.total} tokens"
        )
        return StepOutcome(
            output=response.output,
            token_usage=response.tokens,
            cost=response.cost,
            model=request.model,
            system_prompt=system_prompt or None,
            user_prompt=user_prompt or None,
        )
