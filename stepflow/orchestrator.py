"""Run orchestration: sequential step execution, cancellation and resume."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .config import StepflowConfig
from .context import ExecutionContext, StepResult, resolve_inputs
from .contracts import (
    ModelCallStep,
    RunDetails,
    RunStatus,
    StepRun,
    StepStatus,
    WorkflowDefinition,
    WorkflowRun,
    utcnow,
)
from .errors import (
    ExecutionError,
    InvalidRunStateError,
    RunNotFoundError,
    StepValidationError,
    ToolExecutionError,
    WorkflowNotFoundError,
    WorkflowRunFailed,
)
from .executors import StepExecutors
from .llm import ModelClient
from .persistence import WorkflowRepository, get_repository
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (RunStatus.PENDING, RunStatus.RUNNING)


class WorkflowOrchestrator:
    """Executes workflow runs step by step and persists every transition."""

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        executors: StepExecutors | None = None,
        *,
        config: Optional[StepflowConfig] = None,
        model_client: Optional[ModelClient] = None,
        tool_registry: Optional[ToolRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or StepflowConfig()
        self.repository = repository or get_repository()
        self.executors = executors or StepExecutors.build(
            self.config, model_client=model_client, tool_registry=tool_registry
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    async def execute(
        self, workflow: WorkflowDefinition, input: Optional[Dict[str, Any]] = None
    ) -> WorkflowRun:
        """Run ``workflow`` from its first step.

        Returns the completed or cancelled run. Raises ``WorkflowRunFailed``
        when a step fails; the failed run and step run stay persisted.
        """
        input = dict(input or {})
        run = await self._start_run(workflow, input)
        return await self._run_steps(workflow, run, ExecutionContext(input), start=0)

    async def trigger_run(
        self, slug: str, input: Optional[Dict[str, Any]] = None
    ) -> WorkflowRun:
        workflow = await self._workflow_by_slug(slug)
        return await self.execute(workflow, input)

    async def resume_from_step(self, source_run_id: str, step_id: str) -> WorkflowRun:
        """Start a new run that reuses the source run's results before ``step_id``."""
        source = await self.repository.get_run(source_run_id)
        if source is None:
            raise RunNotFoundError(f"Run {source_run_id} not found")
        workflow = await self.repository.get_workflow(source.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {source.workflow_id} not found")

        index = workflow.step_index(step_id)
        if index is None:
            raise StepValidationError(
                f"Step {step_id} not found in workflow {workflow.slug}"
            )

        completed = {
            step_run.step_id: step_run
            for step_run in await self.repository.list_step_runs(source.id)
            if step_run.status == StepStatus.COMPLETED
        }
        missing = [step.id for step in workflow.steps[:index] if step.id not in completed]
        if missing:
            raise StepValidationError(
                f"Cannot resume run {source.id} from {step_id}: "
                f"no completed output for {', '.join(missing)}"
            )

        run = await self._start_run(workflow, source.input, source_run_id=source.id)
        reused: List[StepRun] = []
        for step in workflow.steps[:index]:
            prior = completed[step.id]
            copy = StepRun(
                **prior.model_dump(
                    exclude={"id", "run_id", "cost", "token_count", "reused_from", "created_at"}
                ),
                run_id=run.id,
                cost=0.0,
                token_count=None,
                reused_from=prior.id,
            )
            reused.append(await self.repository.create_step_run(copy))

        logger.info(
            f"Resuming run {source.id} from step {step_id} as run {run.id} "
            f"({len(reused)} steps reused)"
        )
        context = ExecutionContext.from_step_runs(source.input, reused)
        return await self._run_steps(workflow, run, context, start=index)

    async def get_run(self, run_id: str) -> RunDetails:
        run = await self.repository.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        return RunDetails(run=run, steps=await self.repository.list_step_runs(run_id))

    async def list_runs(self, slug: str, limit: int = 20) -> List[WorkflowRun]:
        workflow = await self._workflow_by_slug(slug)
        return await self.repository.list_runs(workflow_id=workflow.id, limit=limit)

    async def cancel_run(self, run_id: str) -> WorkflowRun:
        """Mark a pending or running run cancelled.

        The executing orchestrator notices at its next step boundary.
        """
        if await self.repository.get_run(run_id) is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        cancelled = await self.repository.transition_run(
            run_id, ACTIVE_STATUSES, status=RunStatus.CANCELLED, finished_at=self._clock()
        )
        if cancelled is None:
            current = await self.repository.get_run(run_id)
            raise InvalidRunStateError(
                f"Cannot cancel run in status: {current.status.value}"
            )
        logger.info(f"Cancelled run {run_id}")
        return cancelled

    # ------------------------------------------------------------------
    # Internals
    async def _workflow_by_slug(self, slug: str) -> WorkflowDefinition:
        workflow = await self.repository.get_workflow_by_slug(slug)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow not found: {slug}")
        return workflow

    async def _start_run(
        self,
        workflow: WorkflowDefinition,
        input: Dict[str, Any],
        source_run_id: Optional[str] = None,
    ) -> WorkflowRun:
        run = await self.repository.create_run(
            WorkflowRun(workflow_id=workflow.id, input=input, source_run_id=source_run_id)
        )
        started = await self.repository.transition_run(
            run.id, [RunStatus.PENDING], status=RunStatus.RUNNING, started_at=self._clock()
        )
        logger.info(f"Started run {run.id} of workflow {workflow.slug}")
        return started or run

    async def _finish_cancelled(self, run: WorkflowRun) -> WorkflowRun:
        logger.info(f"Run {run.id} was cancelled; stopping")
        if run.finished_at is not None:
            return run
        return await self.repository.update_run(run.id, finished_at=self._clock())

    async def _run_steps(
        self,
        workflow: WorkflowDefinition,
        run: WorkflowRun,
        context: ExecutionContext,
        start: int,
    ) -> WorkflowRun:
        async with self.repository.run_lock(run.id):
            for step in workflow.steps[start:]:
                current = await self.repository.get_run(run.id)
                if current is None:
                    raise RunNotFoundError(f"Run {run.id} not found")
                if current.status == RunStatus.CANCELLED:
                    return await self._finish_cancelled(current)

                step_run = await self._execute_step(step, run, context)
                if step_run is None:
                    return await self._finish_cancelled(await self.repository.get_run(run.id))
                context.record(
                    step.id, StepResult(input=step_run.input, output=step_run.output)
                )

            step_runs = await self.repository.list_step_runs(run.id)
            last = context.get(workflow.steps[-1].id) if workflow.steps else None
            finished = await self.repository.transition_run(
                run.id,
                [RunStatus.RUNNING],
                status=RunStatus.COMPLETED,
                output=last.output if last else None,
                actual_cost=sum(step_run.cost or 0.0 for step_run in step_runs),
                finished_at=self._clock(),
            )
            if finished is None:
                return await self._finish_cancelled(await self.repository.get_run(run.id))
            logger.info(
                f"Run {run.id} completed with {len(step_runs)} steps, "
                f"cost ${finished.actual_cost:.6f}"
            )
            return finished

    async def _execute_step(
        self, step, run: WorkflowRun, context: ExecutionContext
    ) -> Optional[StepRun]:
        """Run one step. Returns ``None`` if the run was cancelled while it failed."""
        step_input = resolve_inputs(step.input_mapping, context)
        step_run = await self.repository.create_step_run(
            StepRun(
                run_id=run.id,
                step_id=step.id,
                name=step.name,
                type=step.type,
                model=step.model_name if isinstance(step, ModelCallStep) else None,
                input=step_input,
            )
        )
        step_run = await self.repository.update_step_run(
            step_run.id, status=StepStatus.RUNNING, started_at=self._clock()
        )
        logger.info(f"Executing step {step.id} ({step.type}) for run {run.id}")

        try:
            outcome = await self.executors.executor_for(step).execute(
                step, step_input, context
            )
        except Exception as exc:
            message = exc.message if isinstance(exc, ExecutionError) else str(exc)
            trace = None
            if isinstance(exc, ToolExecutionError) and exc.trace is not None:
                trace = exc.trace.model_dump(mode="json")
            failed_step = await self.repository.update_step_run(
                step_run.id,
                status=StepStatus.FAILED,
                error_message=message,
                trace=trace,
                finished_at=self._clock(),
            )
            failed_run = await self.repository.transition_run(
                run.id,
                ACTIVE_STATUSES,
                status=RunStatus.FAILED,
                error_message=f"Step {step.name} failed: {message}",
                finished_at=self._clock(),
            )
            if failed_run is None:
                return None
            logger.error(f"Run {run.id} failed at step {step.id}: {message}")
            raise WorkflowRunFailed(failed_run, failed_step) from exc

        completed = await self.repository.update_step_run(
            step_run.id,
            status=StepStatus.COMPLETED,
            output=outcome.output,
            trace=outcome.trace,
            token_count=outcome.token_usage.total if outcome.token_usage else None,
            cost=outcome.cost,
            model=outcome.model or step_run.model,
            system_prompt=outcome.system_prompt,
            user_prompt=outcome.user_prompt,
            finished_at=self._clock(),
        )
        logger.info(f"Step {step.id} completed for run {run.id}")
        return completed
