"""Core data contracts for stepflow workflows, runs and evals."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Workflow definitions


class _StepBase(BaseModel):
    """Fields shared by every step template."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    input_mapping: Dict[str, str] = Field(
        default_factory=dict,
        description="Input field name -> dot path into the run context",
    )


class ModelCallStep(_StepBase):
    """Calls a language model with formatted prompt templates."""

    type: Literal["model-call"] = "model-call"
    model_name: Optional[str] = None
    system_prompt_template: Optional[str] = None
    user_prompt_template: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @model_validator(mode="after")
    def _require_prompt(self) -> "ModelCallStep":
        if not self.system_prompt_template and not self.user_prompt_template:
            raise ValueError(
                f"model-call step '{self.id}' needs a system or user prompt template"
            )
        return self


class ToolCallStep(_StepBase):
    """Invokes a named tool from the tool registry."""

    type: Literal["tool-call"] = "tool-call"
    tool_name: str


TransformOperation = Literal[
    "passthrough", "resolve_feed_urls", "validate_feeds", "validate_ranked_feeds"
]


class TransformStep(_StepBase):
    """Reshapes data; batch operations fan out one tool call per item."""

    type: Literal["transform"] = "transform"
    operation: TransformOperation = "passthrough"


StepDefinition = Annotated[
    Union[ModelCallStep, ToolCallStep, TransformStep], Field(discriminator="type")
]


class WorkflowDefinition(BaseModel):
    """Immutable, versioned, ordered list of step templates."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    slug: str
    version: int = 1
    steps: List[StepDefinition] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id '{step.id}' in workflow '{self.slug}'")
            seen.add(step.id)
        return self

    def step_index(self, step_id: str) -> Optional[int]:
        """Return the position of ``step_id`` or ``None`` when absent."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None


# ---------------------------------------------------------------------------
# Execution records


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class ToolMetadata(BaseModel):
    tool_name: str
    duration_ms: float = 0.0
    error_kind: Optional[str] = None
    retry_after: Optional[float] = None


class ToolResult(BaseModel):
    """Uniform result envelope returned by the tool registry."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: ToolMetadata


class ToolTrace(BaseModel):
    """Recorded request/response/timing of a tool invocation."""

    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    duration_ms: float = 0.0
    success: bool


class WorkflowRun(BaseModel):
    """One execution of a workflow definition."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    status: RunStatus = RunStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    actual_cost: float = 0.0
    error_message: Optional[str] = None
    source_run_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            RunStatus.COMPLETED,
            RunStatus.FAILED,
            RunStatus.CANCELLED,
        )


class StepRun(BaseModel):
    """Append-only record of one executed step within a run."""

    id: str = Field(default_factory=_new_id)
    run_id: str
    step_id: str
    name: str
    type: str
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    trace: Optional[Dict[str, Any]] = None
    status: StepStatus = StepStatus.PENDING
    token_count: Optional[int] = None
    cost: Optional[float] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    reused_from: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class RunDetails(BaseModel):
    run: WorkflowRun
    steps: List[StepRun] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Evaluations


class EvalConstraints(BaseModel):
    """Declarative checks applied to a workflow's terminal output."""

    model_config = ConfigDict(populate_by_name=True)

    min_count: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("min_count", "minCount", "minFeeds")
    )
    max_count: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("max_count", "maxCount", "maxFeeds")
    )
    required_domains: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "required_domains", "requiredDomains", "mustIncludeDomains"
        ),
    )
    freshness_window_days: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "freshness_window_days", "freshnessWindowDays", "freshnessDays"
        ),
    )
    min_score: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("min_score", "minScore")
    )


class EvalCase(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    constraints: EvalConstraints = Field(default_factory=EvalConstraints)


class EvalDefinition(BaseModel):
    id: str = Field(default_factory=_new_id)
    workflow_id: str
    name: str
    cases: List[EvalCase] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class EvalCaseResult(BaseModel):
    case_id: str
    case_name: str
    passed: bool
    score: float
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    actual_output: Any = None
    run_id: Optional[str] = None


class EvalRun(BaseModel):
    id: str = Field(default_factory=_new_id)
    eval_id: str
    case_results: List[EvalCaseResult] = Field(default_factory=list)
    overall_score: float = 0.0
    passed: bool = False
    errors: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
