import asyncio

import pytest
from typer.testing import CliRunner

import stepflow.persistence as persistence
from stepflow.cli import app
from stepflow.contracts import (
    EvalCase,
    EvalDefinition,
    RunStatus,
    StepRun,
    StepStatus,
    TransformStep,
    WorkflowDefinition,
    WorkflowRun,
)
from stepflow.persistence import InMemoryWorkflowRepository


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("STEPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def _create_passthrough_workflow(repo) -> WorkflowDefinition:
    workflow = WorkflowDefinition(
        name="Echo",
        slug="echo",
        steps=[
            TransformStep(
                id="echo", name="Echo input", input_mapping={"topic": "input.topic"}
            )
        ],
    )
    return asyncio.run(repo.create_workflow(workflow))


def test_workflow_list_and_show():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.stdout
    assert "No workflows found" in result.stdout

    _create_passthrough_workflow(repo)
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.stdout
    assert "echo\tEcho\tv1\t1 steps" in result.stdout

    result = runner.invoke(app, ["workflow", "show", "echo"])
    assert result.exit_code == 0, result.stdout
    assert "- echo [transform]: Echo input" in result.stdout

    result_missing = runner.invoke(app, ["workflow", "show", "missing"])
    assert result_missing.exit_code == 1
    assert "Workflow not found" in result_missing.stdout


def test_workflow_run_executes_and_lists_runs():
    repo = _setup_repo()
    _create_passthrough_workflow(repo)
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "run", "echo", "--input", '{"topic": "ai"}'])
    assert result.exit_code == 0, result.stdout
    assert ": completed" in result.stdout
    assert '"topic": "ai"' in result.stdout

    runs = asyncio.run(repo.list_runs())
    assert len(runs) == 1

    result = runner.invoke(app, ["workflow", "runs", "echo"])
    assert result.exit_code == 0, result.stdout
    assert runs[0].id in result.stdout

    result = runner.invoke(app, ["run", "show", runs[0].id])
    assert result.exit_code == 0, result.stdout
    assert "- echo: completed" in result.stdout


def test_workflow_run_rejects_bad_input():
    repo = _setup_repo()
    _create_passthrough_workflow(repo)
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "run", "echo", "--input", "{not json"])
    assert result.exit_code == 1
    assert "Invalid JSON input" in result.stdout

    result = runner.invoke(app, ["workflow", "run", "missing"])
    assert result.exit_code == 1
    assert "Workflow not found: missing" in result.stdout


def test_run_cancel_only_from_active_states():
    repo = _setup_repo()
    workflow = _create_passthrough_workflow(repo)
    pending = asyncio.run(repo.create_run(WorkflowRun(workflow_id=workflow.id)))
    done = asyncio.run(
        repo.create_run(WorkflowRun(workflow_id=workflow.id, status=RunStatus.COMPLETED))
    )
    runner = CliRunner()

    result = runner.invoke(app, ["run", "cancel", pending.id])
    assert result.exit_code == 0, result.stdout
    assert "cancelled" in result.stdout
    assert asyncio.run(repo.get_run(pending.id)).status == RunStatus.CANCELLED

    result = runner.invoke(app, ["run", "cancel", done.id])
    assert result.exit_code == 1
    assert "Cannot cancel run in status: completed" in result.stdout

    result = runner.invoke(app, ["run", "show", "missing"])
    assert result.exit_code == 1
    assert "Run missing not found" in result.stdout


def test_run_resume_reuses_prior_steps():
    repo = _setup_repo()
    workflow = asyncio.run(
        repo.create_workflow(
            WorkflowDefinition(
                name="Two",
                slug="two",
                steps=[
                    TransformStep(id="first", name="First", input_mapping={"x": "input.x"}),
                    TransformStep(
                        id="second", name="Second", input_mapping={"y": "steps.first.output.x"}
                    ),
                ],
            )
        )
    )
    source = asyncio.run(
        repo.create_run(
            WorkflowRun(workflow_id=workflow.id, input={"x": 1}, status=RunStatus.FAILED)
        )
    )
    asyncio.run(
        repo.create_step_run(
            StepRun(
                run_id=source.id,
                step_id="first",
                name="First",
                type="transform",
                input={"x": 1},
                output={"x": 1},
                status=StepStatus.COMPLETED,
            )
        )
    )
    runner = CliRunner()

    result = runner.invoke(app, ["run", "resume", source.id, "second"])
    assert result.exit_code == 0, result.stdout
    assert f"Resumed from: {source.id}" in result.stdout
    assert '"y": 1' in result.stdout


def test_seed_creates_workflow_and_eval_idempotently():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.stdout
    assert "Workflow feed-discovery" in result.stdout
    assert "(v1)" in result.stdout

    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.stdout
    assert "(v2)" in result.stdout

    assert len(asyncio.run(repo.list_workflows())) == 1
    evals = asyncio.run(repo.list_evals())
    assert len(evals) == 1
    assert len(evals[0].cases) == 8

    result = runner.invoke(app, ["eval", "list"])
    assert evals[0].id in result.stdout
    assert "8 cases" in result.stdout


def test_eval_run_missing_eval():
    _setup_repo()
    result = CliRunner().invoke(app, ["eval", "run", "missing"])
    assert result.exit_code == 1
    assert "Eval not found: missing" in result.stdout


def test_workflow_update_from_file(tmp_path):
    repo = _setup_repo()
    _create_passthrough_workflow(repo)
    definition = tmp_path / "echo.yaml"
    definition.write_text(
        "name: Echo twice\n"
        "steps:\n"
        "  - id: first\n"
        "    name: First\n"
        "    type: transform\n"
        "  - id: second\n"
        "    name: Second\n"
        "    type: transform\n"
        "    input_mapping:\n"
        "      echoed: steps.first.output\n"
    )
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "update", "echo", "--file", str(definition)])
    assert result.exit_code == 0, result.stdout
    assert "Workflow echo: v2 (2 steps)" in result.stdout
    updated = asyncio.run(repo.get_workflow_by_slug("echo"))
    assert updated.name == "Echo twice"
    assert [s.id for s in updated.steps] == ["first", "second"]

    bad = tmp_path / "bad.yaml"
    bad.write_text("steps:\n  - id: x\n    name: X\n    type: teleport\n")
    result = runner.invoke(app, ["workflow", "update", "echo", "--file", str(bad)])
    assert result.exit_code == 1
    assert "Invalid workflow definition" in result.stdout
    assert asyncio.run(repo.get_workflow_by_slug("echo")).version == 2

    result = runner.invoke(app, ["workflow", "update", "missing", "--file", str(definition)])
    assert result.exit_code == 1
    assert "Workflow not found: missing" in result.stdout


def test_eval_runs_lists_history():
    repo = _setup_repo()
    workflow = _create_passthrough_workflow(repo)
    eval_def = asyncio.run(
        repo.create_eval(
            EvalDefinition(
                workflow_id=workflow.id,
                name="Echo eval",
                cases=[EvalCase(name="empty", input={"topic": "ai"})],
            )
        )
    )
    runner = CliRunner()

    result = runner.invoke(app, ["eval", "runs", eval_def.id])
    assert result.exit_code == 0, result.stdout
    assert "No eval runs found" in result.stdout

    result = runner.invoke(app, ["eval", "run", eval_def.id])
    assert result.exit_code == 0, result.stdout
    (eval_run,) = asyncio.run(repo.list_eval_runs(eval_def.id))

    result = runner.invoke(app, ["eval", "runs", eval_def.id])
    assert result.exit_code == 0, result.stdout
    assert f"{eval_run.id}\t100\tPASSED" in result.stdout

    result = runner.invoke(app, ["eval", "runs", "missing"])
    assert result.exit_code == 1
    assert "Eval not found: missing" in result.stdout
