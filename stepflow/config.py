from __future__ import annotations

import os
from types import MappingProxyType
from typing import Dict, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

from .utils.retry import RetryPolicy

# USD per 1M tokens.
DEFAULT_PRICING: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "gpt-4o": {"input": 2.50, "output": 10.00},
        "gpt-4o-mini": {"input": 0.15, "output": 0.60},
        "gpt-4-turbo": {"input": 10.00, "output": 30.00},
        "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
        "claude-3-5-sonnet": {"input": 3.00, "output": 15.00},
        "claude-3-haiku": {"input": 0.25, "output": 1.25},
    }
)


class ModelPricing(BaseModel):
    """Price per one million input/output tokens in USD."""

    input: float = 0.0
    output: float = 0.0


def _default_pricing() -> Dict[str, ModelPricing]:
    return {name: ModelPricing(**prices) for name, prices in DEFAULT_PRICING.items()}


class ModelConfig(BaseModel):
    """Settings injected into the model-call client."""

    default_model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 4096
    timeout_seconds: float = 60.0
    pricing: Dict[str, ModelPricing] = Field(default_factory=_default_pricing)

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in USD for a call; unknown models cost nothing."""
        prices = self.pricing.get(model.split(":", 1)[-1])
        if prices is None:
            return 0.0
        return (input_tokens / 1_000_000) * prices.input + (
            output_tokens / 1_000_000
        ) * prices.output


class RetryConfig(BaseModel):
    """Backoff settings for transient external failures."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def policy(self) -> RetryPolicy:
        return RetryPolicy(**self.model_dump())


class ToolsConfig(BaseModel):
    """Settings for the built-in tools."""

    brave_api_key: Optional[str] = None
    search_cache_ttl_seconds: float = 600.0
    http_timeout_seconds: float = 10.0
    page_timeout_seconds: float = 5.0
    probe_timeout_seconds: float = 3.0
    max_concurrency: int = 5
    user_agent: str = "Mozilla/5.0 (compatible; stepflow feed discovery)"


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    env: Literal["dev", "prod"] = "prod"
    database_url: Optional[str] = None
    log_level: str = "INFO"
    model: ModelConfig = ModelConfig()
    retry: RetryConfig = RetryConfig()
    tools: ToolsConfig = ToolsConfig()


def get_app_env() -> Literal["dev", "prod"]:
    """Return ``dev`` only when ``APP_ENV`` is explicitly ``dev``."""
    return "dev" if os.getenv("APP_ENV") == "dev" else "prod"


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_db_url = os.getenv("STEPFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("APP_ENV") is not None:
        config.env = get_app_env()
    if os.getenv("BRAVE_SEARCH_API_KEY"):
        config.tools.brave_api_key = os.getenv("BRAVE_SEARCH_API_KEY")
    if os.getenv("STEPFLOW_LOG_LEVEL"):
        config.log_level = os.getenv("STEPFLOW_LOG_LEVEL")
    return config
