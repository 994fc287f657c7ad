"""Shared repository logic over a small set of storage primitives.

Backends store each record as a JSON body plus a few indexed columns (see
``TABLES``) and an insertion sequence used for ordering.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from pydantic import BaseModel

from ..contracts import (
    EvalDefinition,
    EvalRun,
    RunStatus,
    StepRun,
    WorkflowDefinition,
    WorkflowRun,
)
from ..errors import DuplicateWorkflowError, RunNotFoundError, WorkflowNotFoundError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Body = Dict[str, Any]
Mutator = Callable[[Body], Optional[Body]]

# table -> indexed columns (besides id and env)
TABLES: Dict[str, Tuple[str, ...]] = {
    "workflows": ("slug",),
    "runs": ("workflow_id", "status"),
    "step_runs": ("run_id",),
    "evals": ("workflow_id",),
    "eval_runs": ("eval_id",),
}


def index_values(table: str, body: Body) -> Dict[str, Any]:
    return {column: body.get(column) for column in TABLES[table]}


def _dump(model: BaseModel) -> Body:
    return model.model_dump(mode="json")


def _apply(model_cls: Type[M], body: Body, changes: Dict[str, Any]) -> Body:
    current = model_cls.model_validate(body)
    return _dump(current.model_copy(update=changes))


class KeyedLocks:
    """``asyncio.Lock`` per key, dropped once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._locks: Dict[Any, asyncio.Lock] = {}
        self._users: Dict[Any, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class RecordRepository(ABC):
    """Implements the repository protocol on top of backend primitives."""

    def __init__(self, env: str = "prod") -> None:
        self.env = env
        self._record_locks = KeyedLocks()
        self._run_locks = KeyedLocks()
        self._slug_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Storage primitives
    @abstractmethod
    async def _insert(self, table: str, record_id: str, body: Body) -> None:
        """Store a new record."""

    @abstractmethod
    async def _fetch(self, table: str, record_id: str) -> Optional[Body]:
        """Return the body of a record in this environment."""

    @abstractmethod
    async def _replace(self, table: str, record_id: str, body: Body) -> None:
        """Overwrite a record's body and indexed columns."""

    @abstractmethod
    async def _select(
        self,
        table: str,
        filters: Dict[str, Any],
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Body]:
        """Return bodies matching ``filters`` ordered by insertion."""

    async def _mutate(self, table: str, record_id: str, mutate: Mutator) -> Optional[Body]:
        """Atomic read-modify-write of one record.

        ``mutate`` returns the new body, or ``None`` to leave the record
        untouched. Returns the stored body, or ``None`` when nothing changed.
        """
        async with self._record_locks.hold((table, record_id)):
            body = await self._fetch(table, record_id)
            if body is None:
                return None
            updated = mutate(body)
            if updated is None:
                return None
            await self._replace(table, record_id, updated)
            return updated

    @asynccontextmanager
    async def run_lock(self, run_id: str) -> AsyncIterator[None]:
        async with self._run_locks.hold(run_id):
            yield

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        async with self._slug_lock:
            if await self.get_workflow_by_slug(workflow.slug) is not None:
                raise DuplicateWorkflowError(
                    f"Workflow with slug '{workflow.slug}' already exists"
                )
            await self._insert("workflows", workflow.id, _dump(workflow))
        logger.info(f"Created workflow {workflow.slug} ({workflow.id})")
        return workflow

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        body = await self._fetch("workflows", workflow_id)
        return WorkflowDefinition.model_validate(body) if body else None

    async def get_workflow_by_slug(self, slug: str) -> WorkflowDefinition | None:
        bodies = await self._select("workflows", {"slug": slug}, limit=1)
        return WorkflowDefinition.model_validate(bodies[0]) if bodies else None

    async def list_workflows(self) -> list[WorkflowDefinition]:
        bodies = await self._select("workflows", {})
        return [WorkflowDefinition.model_validate(b) for b in bodies]

    async def update_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        def _bump(body: Body) -> Body:
            replacement = _dump(workflow)
            replacement["version"] = body["version"] + 1
            replacement["created_at"] = body["created_at"]
            return replacement

        updated = await self._mutate("workflows", workflow.id, _bump)
        if updated is None:
            raise WorkflowNotFoundError(f"Workflow {workflow.id} not found")
        return WorkflowDefinition.model_validate(updated)

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        await self._insert("runs", run.id, _dump(run))
        return run

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        body = await self._fetch("runs", run_id)
        return WorkflowRun.model_validate(body) if body else None

    async def update_run(self, run_id: str, **changes: Any) -> WorkflowRun:
        updated = await self._mutate(
            "runs", run_id, lambda body: _apply(WorkflowRun, body, changes)
        )
        if updated is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        return WorkflowRun.model_validate(updated)

    async def transition_run(
        self, run_id: str, allowed: Iterable[RunStatus], **changes: Any
    ) -> WorkflowRun | None:
        allowed_values = {RunStatus(s).value for s in allowed}

        def _transition(body: Body) -> Optional[Body]:
            if body["status"] not in allowed_values:
                return None
            return _apply(WorkflowRun, body, changes)

        updated = await self._mutate("runs", run_id, _transition)
        return WorkflowRun.model_validate(updated) if updated else None

    async def list_runs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
        limit: Optional[int] = None,
    ) -> list[WorkflowRun]:
        filters = {
            "workflow_id": workflow_id,
            "status": RunStatus(status).value if status else None,
        }
        bodies = await self._select("runs", filters, descending=True, limit=limit)
        return [WorkflowRun.model_validate(b) for b in bodies]

    # ------------------------------------------------------------------
    # Step runs
    async def create_step_run(self, step_run: StepRun) -> StepRun:
        await self._insert("step_runs", step_run.id, _dump(step_run))
        return step_run

    async def update_step_run(self, step_run_id: str, **changes: Any) -> StepRun:
        updated = await self._mutate(
            "step_runs", step_run_id, lambda body: _apply(StepRun, body, changes)
        )
        if updated is None:
            raise RunNotFoundError(f"Step run {step_run_id} not found")
        return StepRun.model_validate(updated)

    async def list_step_runs(self, run_id: str) -> list[StepRun]:
        bodies = await self._select("step_runs", {"run_id": run_id})
        return [StepRun.model_validate(b) for b in bodies]

    # ------------------------------------------------------------------
    # Evals
    async def create_eval(self, eval_def: EvalDefinition) -> EvalDefinition:
        await self._insert("evals", eval_def.id, _dump(eval_def))
        return eval_def

    async def get_eval(self, eval_id: str) -> EvalDefinition | None:
        body = await self._fetch("evals", eval_id)
        return EvalDefinition.model_validate(body) if body else None

    async def list_evals(self, workflow_id: Optional[str] = None) -> list[EvalDefinition]:
        bodies = await self._select("evals", {"workflow_id": workflow_id})
        return [EvalDefinition.model_validate(b) for b in bodies]

    async def create_eval_run(self, eval_run: EvalRun) -> EvalRun:
        await self._insert("eval_runs", eval_run.id, _dump(eval_run))
        return eval_run

    async def list_eval_runs(self, eval_id: str) -> list[EvalRun]:
        bodies = await self._select("eval_runs", {"eval_id": eval_id}, descending=True)
        return [EvalRun.model_validate(b) for b in bodies]
