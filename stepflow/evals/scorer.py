"""Evaluation batches: run a workflow per case and grade the output."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional
from urllib.parse import urlsplit

from ..contracts import (
    EvalCase,
    EvalCaseResult,
    EvalConstraints,
    EvalRun,
    utcnow,
)
from ..errors import EvalNotFoundError, WorkflowNotFoundError
from ..orchestrator import WorkflowOrchestrator
from ..persistence import WorkflowRepository

logger = logging.getLogger(__name__)


@dataclass
class Grade:
    score: float
    passed: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _item_url(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    return item.get("rss_url") or item.get("url")


def _hostname(url: Optional[str]) -> Optional[str]:
    if not isinstance(url, str):
        return None
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return None
    return parts.hostname.lower()


def _is_fresh(item: Any, window_days: float, now: datetime) -> bool:
    validation = item.get("validation") if isinstance(item, dict) else None
    published = validation.get("last_published_at") if isinstance(validation, dict) else None
    if not published:
        return False
    try:
        published_at = datetime.fromisoformat(str(published).replace("Z", "+00:00"))
    except ValueError:
        return False
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=now.tzinfo)
    return now - published_at <= timedelta(days=window_days)


def grade_output(constraints: EvalConstraints, output: Any, now: datetime) -> Grade:
    """Score a workflow output against ``constraints``.

    Starts from 100 and deducts per violation; the result never drops below 0.
    """
    items = output.get("feeds") if isinstance(output, dict) else None
    if not isinstance(items, list):
        items = []
    count = len(items)
    errors: List[str] = []
    warnings: List[str] = []
    score = 100.0

    if constraints.min_count is not None and count < constraints.min_count:
        errors.append(f"Expected at least {constraints.min_count} feeds, got {count}")
        score -= 20
    if constraints.max_count is not None and count > constraints.max_count:
        warnings.append(f"Expected at most {constraints.max_count} feeds, got {count}")
        score -= 10

    if constraints.required_domains:
        hosts = [h for h in (_hostname(_item_url(item)) for item in items) if h]
        missing = [
            domain
            for domain in constraints.required_domains
            if not any(domain.lower() in host for host in hosts)
        ]
        if missing:
            errors.append(f"Missing required domains: {', '.join(missing)}")
            score -= 15 * len(missing)

    if constraints.freshness_window_days:
        fresh = sum(
            1 for item in items if _is_fresh(item, constraints.freshness_window_days, now)
        )
        if fresh == 0:
            errors.append(
                f"No feeds are fresh (within {constraints.freshness_window_days:g} days)"
            )
            score -= 20
        elif fresh < count:
            warnings.append(f"{count - fresh} feeds are not fresh")
            score -= 5

    invalid = sum(1 for item in items if _hostname(_item_url(item)) is None)
    if invalid:
        errors.append(f"{invalid} feeds have invalid URLs")
        score -= 10 * invalid

    if constraints.min_score is not None and score < constraints.min_score:
        errors.append(f"Score {score:g} is below minimum {constraints.min_score:g}")

    score = max(0.0, score)
    passed = not errors and score >= (constraints.min_score or 0)
    return Grade(score=score, passed=passed, errors=errors, warnings=warnings)


class EvalScorer:
    """Runs every case of an eval definition and persists the batch result."""

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        repository: WorkflowRepository | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.orchestrator = orchestrator
        self.repository = repository or orchestrator.repository
        self._clock = clock

    async def _run_case(self, workflow, case: EvalCase) -> EvalCaseResult:
        logger.info(f"Running eval case: {case.name}")
        try:
            run = await self.orchestrator.execute(workflow, case.input)
        except Exception as exc:
            logger.error(f"Eval case {case.name} failed: {exc}")
            return EvalCaseResult(
                case_id=case.id,
                case_name=case.name,
                passed=False,
                score=0.0,
                errors=[str(exc) or "Workflow execution failed"],
            )
        grade = grade_output(case.constraints, run.output, self._clock())
        return EvalCaseResult(
            case_id=case.id,
            case_name=case.name,
            passed=grade.passed,
            score=grade.score,
            errors=grade.errors,
            warnings=grade.warnings,
            actual_output=run.output,
            run_id=run.id,
        )

    async def run_eval(self, eval_id: str) -> EvalRun:
        eval_def = await self.repository.get_eval(eval_id)
        if eval_def is None:
            raise EvalNotFoundError(f"Eval not found: {eval_id}")
        workflow = await self.repository.get_workflow(eval_def.workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow not found: {eval_def.workflow_id}")

        logger.info(f"Running {len(eval_def.cases)} cases for eval: {eval_def.name}")
        results = [await self._run_case(workflow, case) for case in eval_def.cases]

        overall = sum(r.score for r in results) / len(results) if results else 0.0
        eval_run = EvalRun(
            eval_id=eval_def.id,
            case_results=results,
            overall_score=round(overall, 2),
            passed=all(r.passed for r in results),
            errors=[f"{r.case_name}: {error}" for r in results for error in r.errors],
        )
        await self.repository.create_eval_run(eval_run)
        logger.info(
            f"Eval {eval_def.name} completed: {eval_run.overall_score}% overall, "
            f"{'PASSED' if eval_run.passed else 'FAILED'}"
        )
        return eval_run
