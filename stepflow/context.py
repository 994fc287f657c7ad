"""Run context and input resolution.

The context holds the workflow input plus the recorded input/output of every
step executed so far. Later steps pull their inputs out of it through
dot-separated paths such as ``steps.search.output.results`` or
``input.interests``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel, Field

from .contracts import StepRun, StepStatus


class _Missing:
    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class StepResult(BaseModel):
    """Input and output of one executed step, as seen by later steps."""

    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    status: StepStatus = StepStatus.COMPLETED


class ExecutionContext:
    """Append-only view of a run's workflow input and prior step results."""

    def __init__(self, input: Optional[Dict[str, Any]] = None) -> None:
        self.input: Dict[str, Any] = dict(input or {})
        self._steps: Dict[str, StepResult] = {}

    @classmethod
    def from_step_runs(
        cls, input: Optional[Dict[str, Any]], step_runs: Iterable[StepRun]
    ) -> "ExecutionContext":
        """Rebuild a context from persisted step runs."""
        context = cls(input)
        for step_run in step_runs:
            context.record(
                step_run.step_id,
                StepResult(
                    input=step_run.input or {},
                    output=step_run.output,
                    status=step_run.status,
                ),
            )
        return context

    @property
    def steps(self) -> Mapping[str, StepResult]:
        return dict(self._steps)

    def record(self, step_id: str, result: StepResult) -> None:
        """Add a step result. Prior results are never overwritten."""
        if step_id in self._steps:
            raise ValueError(f"step '{step_id}' already recorded in context")
        self._steps[step_id] = result

    def get(self, step_id: str) -> Optional[StepResult]:
        return self._steps.get(step_id)

    def as_mapping(self) -> Dict[str, Any]:
        """Plain nested mapping used for path lookups and prompt variables."""
        return {
            "input": self.input,
            "steps": {
                step_id: result.model_dump(mode="json")
                for step_id, result in self._steps.items()
            },
        }


def resolve_path(path: str, root: Any) -> Any:
    """Walk ``path`` through ``root``; return ``MISSING`` on any broken segment."""
    if not path:
        return MISSING
    value = root
    for part in path.split("."):
        if isinstance(value, Mapping):
            if part not in value:
                return MISSING
            value = value[part]
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            try:
                value = value[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return value


def resolve_inputs(
    mapping: Optional[Mapping[str, str]], context: ExecutionContext
) -> Dict[str, Any]:
    """Resolve a step's declared input fields from ``context``.

    Fields whose path cannot be followed are left out; type and shape checks
    are the consuming executor's job.
    """
    if not mapping:
        return {}
    root = context.as_mapping()
    resolved: Dict[str, Any] = {}
    for field, path in mapping.items():
        if not isinstance(path, str):
            continue
        value = resolve_path(path, root)
        if value is not MISSING:
            resolved[field] = value
    return resolved
