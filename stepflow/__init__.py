"""stepflow: durable, observable execution of multi-step LLM workflows."""

from .config import StepflowConfig, load_config
from .contracts import (
    EvalDefinition,
    ModelCallStep,
    RunStatus,
    StepRun,
    ToolCallStep,
    TransformStep,
    WorkflowDefinition,
    WorkflowRun,
)
from .evals import EvalScorer
from .orchestrator import WorkflowOrchestrator
from .persistence import get_repository
from .tools import ToolRegistry, build_default_registry

__version__ = "0.1.0"
__all__ = [
    "EvalDefinition",
    "EvalScorer",
    "ModelCallStep",
    "RunStatus",
    "StepRun",
    "StepflowConfig",
    "ToolCallStep",
    "ToolRegistry",
    "TransformStep",
    "WorkflowDefinition",
    "WorkflowOrchestrator",
    "WorkflowRun",
    "build_default_registry",
    "get_repository",
    "load_config",
]
