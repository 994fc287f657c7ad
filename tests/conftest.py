"""Shared fakes for stepflow tests."""

from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from stepflow.config import RetryConfig, StepflowConfig
from stepflow.contracts import TokenUsage
from stepflow.executors import StepExecutors
from stepflow.llm import ModelRequest, ModelResponse
from stepflow.orchestrator import WorkflowOrchestrator
from stepflow.persistence import InMemoryWorkflowRepository
from stepflow.tools import ToolRegistry

Reply = Union[Any, BaseException, Callable[[ModelRequest], Any]]


class FakeModelClient:
    """Replays scripted replies in order; exceptions are raised.

    A reply may be a callable taking the request. Each successful call costs
    ``cost`` and reports ten input and five output tokens.
    """

    def __init__(self, replies: Optional[List[Reply]] = None, cost: float = 0.01):
        self.replies = list(replies or [])
        self.cost = cost
        self.requests: List[ModelRequest] = []

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else {}
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(request)
        return ModelResponse(
            output=reply,
            tokens=TokenUsage(input=10, output=5, total=15),
            cost=self.cost,
        )


def make_registry(tools: Dict[str, Callable]) -> ToolRegistry:
    registry = ToolRegistry()
    for name, tool in tools.items():
        registry.register(name, tool)
    return registry


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    """Make retry backoff instantaneous."""

    async def _no_sleep(delay: float) -> None:
        return None

    monkeypatch.setattr("stepflow.utils.retry.schedule_retry", _no_sleep)


@pytest.fixture
def config() -> StepflowConfig:
    return StepflowConfig(retry=RetryConfig(max_attempts=3, initial_delay=0.01))


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def fake_model_client():
    return FakeModelClient


@pytest.fixture
def tool_registry_factory():
    return make_registry


@pytest.fixture
def orchestrator_factory(repository, config):
    """Build an orchestrator over the shared in-memory repository."""

    def _build(
        model_client: Optional[FakeModelClient] = None,
        tools: Optional[Dict[str, Callable]] = None,
        **kwargs: Any,
    ) -> WorkflowOrchestrator:
        executors = StepExecutors.build(
            config,
            model_client=model_client or FakeModelClient(),
            tool_registry=make_registry(tools or {}),
        )
        return WorkflowOrchestrator(repository, executors, config=config, **kwargs)

    return _build
