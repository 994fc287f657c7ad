"""Repository abstraction for workflow, run and eval persistence."""

from __future__ import annotations

from typing import AsyncContextManager, Any, Iterable, Optional, Protocol

from ..contracts import (
    EvalDefinition,
    EvalRun,
    RunStatus,
    StepRun,
    WorkflowDefinition,
    WorkflowRun,
)


class WorkflowRepository(Protocol):
    """Protocol for persistence backends.

    Every record belongs to the environment (``dev`` or ``prod``) the
    repository was created for; records of the other environment are
    invisible.
    """

    env: str

    # Workflows
    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Persist a new workflow. Slugs are unique per environment."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow by id."""

    async def get_workflow_by_slug(self, slug: str) -> WorkflowDefinition | None:
        """Retrieve a workflow by slug."""

    async def list_workflows(self) -> list[WorkflowDefinition]:
        """Return all workflows in creation order."""

    async def update_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Replace a workflow's definition and bump its version."""

    # Runs
    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        """Persist a new run."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def update_run(self, run_id: str, **changes: Any) -> WorkflowRun:
        """Apply ``changes`` to a run unconditionally."""

    async def transition_run(
        self, run_id: str, allowed: Iterable[RunStatus], **changes: Any
    ) -> WorkflowRun | None:
        """Apply ``changes`` only if the run's status is in ``allowed``.

        Returns the updated run, or ``None`` when the status did not match.
        """

    async def list_runs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
        limit: Optional[int] = None,
    ) -> list[WorkflowRun]:
        """Return runs newest first."""

    # Step runs
    async def create_step_run(self, step_run: StepRun) -> StepRun:
        """Persist a new step run."""

    async def update_step_run(self, step_run_id: str, **changes: Any) -> StepRun:
        """Apply ``changes`` to a step run."""

    async def list_step_runs(self, run_id: str) -> list[StepRun]:
        """Return a run's step runs in creation order."""

    # Evals
    async def create_eval(self, eval_def: EvalDefinition) -> EvalDefinition:
        """Persist an eval definition."""

    async def get_eval(self, eval_id: str) -> EvalDefinition | None:
        """Retrieve an eval definition by id."""

    async def list_evals(self, workflow_id: Optional[str] = None) -> list[EvalDefinition]:
        """Return eval definitions, optionally for one workflow."""

    async def create_eval_run(self, eval_run: EvalRun) -> EvalRun:
        """Persist the result of an eval batch."""

    async def list_eval_runs(self, eval_id: str) -> list[EvalRun]:
        """Return an eval's runs newest first."""

    def run_lock(self, run_id: str) -> AsyncContextManager[None]:
        """Mutual exclusion over writes belonging to one run."""
