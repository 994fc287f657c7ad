"""Command line interface for stepflow workflows, runs and evals."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Optional, TypeVar

import typer
import yaml
from pydantic import ValidationError

from stepflow.config import load_config
from stepflow.contracts import RunDetails, WorkflowDefinition, WorkflowRun
from stepflow.errors import StepflowError
from stepflow.evals import EvalScorer
from stepflow.orchestrator import WorkflowOrchestrator
from stepflow.persistence import get_repository
from stepflow.seed import seed_all

T = TypeVar("T")

app = typer.Typer(help="CLI for stepflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")
run_app = typer.Typer(help="Commands for inspecting and controlling runs")
eval_app = typer.Typer(help="Commands for running evaluations")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")
app.add_typer(eval_app, name="eval")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to config or STEPFLOW_LOG_LEVEL)"
    ),
) -> None:
    """stepflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _orchestrator() -> WorkflowOrchestrator:
    return WorkflowOrchestrator(get_repository(), config=load_config())


def _run(awaitable: Awaitable[T]) -> T:
    """Run a coroutine, turning stepflow errors into a red message and exit 1."""
    try:
        return asyncio.run(awaitable)
    except StepflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _echo_run(run: WorkflowRun) -> None:
    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Cost: ${run.actual_cost:.6f}")
    if run.source_run_id:
        typer.echo(f"Resumed from: {run.source_run_id}")
    if run.error_message:
        typer.secho(f"Error: {run.error_message}", fg=typer.colors.RED)
    if run.output is not None:
        typer.echo(f"Output: {_dumps(run.output)}")


@workflow_app.command("list")
def workflow_list() -> None:
    """List all workflow definitions."""
    repo = get_repository()
    workflows = _run(repo.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.slug}\t{wf.name}\tv{wf.version}\t{len(wf.steps)} steps")


@workflow_app.command("show")
def workflow_show(slug: str) -> None:
    """
    Show a workflow definition and its steps.

    Example:
        stepflow workflow show feed-discovery
        # Output: Feed Discovery (feed-discovery) v1
        #         - generate_queries [model-call]: Generate search query
    """
    repo = get_repository()
    wf = _run(repo.get_workflow_by_slug(slug))
    if wf is None:
        typer.secho(f"Workflow not found: {slug}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{wf.name} ({wf.slug}) v{wf.version}")
    for step in wf.steps:
        typer.echo(f"- {step.id} [{step.type}]: {step.name}")


@workflow_app.command("update")
def workflow_update(
    slug: str,
    file: Path = typer.Option(
        ..., "--file", "-f", exists=True, dir_okay=False, help="YAML or JSON definition"
    ),
) -> None:
    """
    Replace a workflow's name and steps from a definition file and bump its version.

    Example:
        stepflow workflow update feed-discovery --file feed-discovery.yaml
    """
    repo = get_repository()
    wf = _run(repo.get_workflow_by_slug(slug))
    if wf is None:
        typer.secho(f"Workflow not found: {slug}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        data = yaml.safe_load(file.read_text()) or {}
    except yaml.YAMLError as exc:
        typer.secho(f"Invalid definition file: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.secho("Definition file must contain a mapping", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        replacement = WorkflowDefinition.model_validate(
            {**wf.model_dump(), **data, "id": wf.id, "slug": wf.slug}
        )
    except ValidationError as exc:
        typer.secho(f"Invalid workflow definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    updated = _run(repo.update_workflow(replacement))
    typer.echo(f"Workflow {updated.slug}: v{updated.version} ({len(updated.steps)} steps)")


@workflow_app.command("run")
def workflow_run(
    slug: str,
    input: str = typer.Option("{}", "--input", "-i", help="Workflow input as JSON"),
) -> None:
    """
    Execute a workflow synchronously and print the finished run.

    Example:
        stepflow workflow run feed-discovery --input '{"interests": "economics"}'
    """
    try:
        payload = json.loads(input)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(payload, dict):
        typer.secho("Workflow input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    run = _run(_orchestrator().trigger_run(slug, payload))
    _echo_run(run)


@workflow_app.command("runs")
def workflow_runs(
    slug: str, limit: int = typer.Option(20, help="Maximum number of runs to list")
) -> None:
    """List recent runs of a workflow, newest first."""
    runs = _run(_orchestrator().list_runs(slug, limit=limit))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.id}\t{run.status.value}\t{run.created_at.isoformat()}"
            f"\t${run.actual_cost:.6f}"
        )


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show a run with its step history."""
    details: RunDetails = _run(_orchestrator().get_run(run_id))
    _echo_run(details.run)
    for step in details.steps:
        line = f"- {step.step_id}: {step.status.value}"
        if step.reused_from:
            line += f" (reused from {step.reused_from})"
        if step.cost:
            line += f" ${step.cost:.6f}"
        typer.echo(line)
        if step.error_message:
            typer.echo(f"    {step.error_message}")


@run_app.command("cancel")
def run_cancel(run_id: str) -> None:
    """Cancel a pending or running run."""
    run = _run(_orchestrator().cancel_run(run_id))
    typer.echo(f"Run {run.id}: {run.status.value}")


@run_app.command("resume")
def run_resume(run_id: str, step_id: str) -> None:
    """
    Re-run a previous run starting at STEP_ID.

    Results of the steps before STEP_ID are reused from the source run; a new
    run is created and the source run is left untouched.
    """
    run = _run(_orchestrator().resume_from_step(run_id, step_id))
    _echo_run(run)


@eval_app.command("list")
def eval_list() -> None:
    """List evaluation definitions."""
    evals = _run(get_repository().list_evals())
    if not evals:
        typer.echo("No evals found")
        return
    for eval_def in evals:
        typer.echo(f"{eval_def.id}\t{eval_def.name}\t{len(eval_def.cases)} cases")


@eval_app.command("run")
def eval_run(eval_id: str) -> None:
    """Run every case of an evaluation and print the scores."""
    orchestrator = _orchestrator()
    result = _run(EvalScorer(orchestrator).run_eval(eval_id))
    for case in result.case_results:
        status = "PASS" if case.passed else "FAIL"
        typer.echo(f"{status}\t{case.score:g}\t{case.case_name}")
        for warning in case.warnings:
            typer.echo(f"    warning: {warning}")
    color = typer.colors.GREEN if result.passed else typer.colors.RED
    typer.secho(
        f"Overall score: {result.overall_score:g} "
        f"({'PASSED' if result.passed else 'FAILED'})",
        fg=color,
    )
    for error in result.errors:
        typer.echo(f"  {error}")


@eval_app.command("runs")
def eval_runs(eval_id: str) -> None:
    """List past runs of an evaluation, newest first."""
    repo = get_repository()
    if _run(repo.get_eval(eval_id)) is None:
        typer.secho(f"Eval not found: {eval_id}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    eval_runs = _run(repo.list_eval_runs(eval_id))
    if not eval_runs:
        typer.echo("No eval runs found")
        return
    for eval_run in eval_runs:
        status = "PASSED" if eval_run.passed else "FAILED"
        typer.echo(
            f"{eval_run.id}\t{eval_run.overall_score:g}\t{status}"
            f"\t{eval_run.created_at.isoformat()}"
        )


@app.command("seed")
def seed() -> None:
    """Create or refresh the feed discovery workflow and its evaluation."""
    workflow, eval_def = _run(seed_all(get_repository()))
    typer.echo(f"Workflow {workflow.slug}: {workflow.id} (v{workflow.version})")
    typer.echo(f"Eval {eval_def.name}: {eval_def.id}")


if __name__ == "__main__":
    app()
