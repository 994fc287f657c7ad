"""Model-call collaborator backed by pydantic-ai agents."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional, Protocol, Union

import httpx
from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelAPIError, ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from ..config import ModelConfig
from ..contracts import TokenUsage
from ..errors import (
    ExecutionError,
    InvalidOutput,
    MissingCredential,
    ModelTimeout,
    RateLimited,
    TransientExternalError,
)
from .output import parse_json_output, validate_output

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = (
    "You must respond with valid JSON only. "
    "Do not include any text outside the JSON object."
)

_PROVIDER_PREFIXES = {"gpt-": "openai", "o1": "openai", "o3": "openai", "claude-": "anthropic"}
_PROVIDER_KEYS = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}


class ModelRequest(BaseModel):
    model: str
    system_prompt: str = ""
    user_prompt: str = ""
    output_schema: Optional[Dict[str, Any]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class ModelResponse(BaseModel):
    output: Any = None
    tokens: TokenUsage = TokenUsage()
    cost: float = 0.0
    duration_ms: float = 0.0


class ModelClient(Protocol):
    """Interface consumed by the model-call step executor."""

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        """Run one completion; raise a typed ``ExecutionError`` on failure."""


def qualify_model_name(model: str) -> str:
    """Map bare model ids such as ``gpt-4o`` to pydantic-ai ``provider:model`` ids."""
    if ":" in model:
        return model
    for prefix, provider in _PROVIDER_PREFIXES.items():
        if model.startswith(prefix):
            return f"{provider}:{model}"
    return model


class PydanticAIModelClient:
    """Calls language models through :class:`pydantic_ai.Agent`.

    Pricing and defaults come from the injected :class:`ModelConfig`.
    ``model`` replaces name-based model selection, which is how tests plug in
    ``pydantic_ai.models.test.TestModel``.
    """

    def __init__(self, config: ModelConfig, model: Union[Model, None] = None) -> None:
        self._config = config
        self._model_override = model

    def _check_credentials(self, model_id: str) -> None:
        provider = model_id.split(":", 1)[0] if ":" in model_id else None
        env_key = _PROVIDER_KEYS.get(provider or "")
        if env_key and not os.getenv(env_key):
            raise MissingCredential(model_id)

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        started = time.perf_counter()
        model_id = qualify_model_name(request.model or self._config.default_model)
        if self._model_override is None:
            self._check_credentials(model_id)

        system_prompt = request.system_prompt
        if request.output_schema is not None and "JSON" not in system_prompt:
            system_prompt = f"{system_prompt}\n\nIMPORTANT: {JSON_INSTRUCTION}".strip()

        agent = Agent(
            self._model_override or model_id,
            system_prompt=system_prompt or (),
            output_type=str,
        )
        settings = ModelSettings(
            temperature=(
                request.temperature
                if request.temperature is not None
                else self._config.temperature
            ),
            max_tokens=request.max_tokens or self._config.max_tokens,
            timeout=self._config.timeout_seconds,
        )

        try:
            result = await agent.run(request.user_prompt or None, model_settings=settings)
        except ModelHTTPError as exc:
            raise self._translate_http_error(model_id, exc) from exc
        except ModelAPIError as exc:
            raise self._translate_api_error(model_id, exc) from exc
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ModelTimeout(
                f"Request to {model_id} timed out after {self._config.timeout_seconds}s"
            ) from exc
        except httpx.TransportError as exc:
            raise TransientExternalError(f"Network error calling {model_id}: {exc}") from exc
        except UnexpectedModelBehavior as exc:
            raise InvalidOutput(f"Unexpected model behaviour: {exc}") from exc

        content = result.output.strip() if isinstance(result.output, str) else result.output
        if request.output_schema is not None:
            output = validate_output(parse_json_output(content), request.output_schema)
        else:
            output = content

        usage = result.usage()
        input_tokens = usage.input_tokens or 0
        output_tokens = usage.output_tokens or 0
        tokens = TokenUsage(
            input=input_tokens,
            output=output_tokens,
            total=input_tokens + output_tokens,
        )
        cost = self._config.calculate_cost(model_id, input_tokens, output_tokens)
        duration_ms = (time.perf_counter() - started) * 1000

        logger.info(
            f"{model_id} completed in {duration_ms:.0f}ms: "
            f"{tokens.total} tokens, ${cost:.4f}"
        )
        return ModelResponse(output=output, tokens=tokens, cost=cost, duration_ms=duration_ms)

    @staticmethod
    def _translate_api_error(model_id: str, exc: ModelAPIError) -> ExecutionError:
        """Provider SDK failures without an HTTP status: timeouts and lost connections."""
        if "timed out" in str(exc).lower():
            return ModelTimeout(f"Request to {model_id} timed out: {exc}")
        return TransientExternalError(f"Network error calling {model_id}: {exc}")

    @staticmethod
    def _translate_http_error(model_id: str, exc: ModelHTTPError) -> ExecutionError:
        status = exc.status_code
        if status == 429:
            return RateLimited(f"Rate limit exceeded for {model_id}")
        if status in (401, 403):
            return MissingCredential(model_id)
        if status >= 500:
            return TransientExternalError(f"{model_id} returned HTTP {status}")
        return ExecutionError(f"{model_id} request failed with HTTP {status}: {exc.body}")
