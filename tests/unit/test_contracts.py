import pytest
from pydantic import ValidationError

from stepflow.contracts import (
    EvalConstraints,
    ModelCallStep,
    ToolCallStep,
    TransformStep,
    WorkflowDefinition,
    WorkflowRun,
    RunStatus,
)


def test_steps_are_parsed_by_type_tag():
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "Demo",
            "slug": "demo",
            "steps": [
                {"id": "a", "name": "A", "type": "model-call", "user_prompt_template": "hi"},
                {"id": "b", "name": "B", "type": "tool-call", "tool_name": "web_search"},
                {"id": "c", "name": "C", "type": "transform"},
            ],
        }
    )
    assert [type(s) for s in workflow.steps] == [ModelCallStep, ToolCallStep, TransformStep]
    assert workflow.steps[2].operation == "passthrough"
    assert workflow.step_index("b") == 1
    assert workflow.step_index("zzz") is None


def test_unknown_step_type_is_rejected():
    with pytest.raises(ValidationError):
        WorkflowDefinition.model_validate(
            {"name": "x", "slug": "x", "steps": [{"id": "a", "name": "A", "type": "shell"}]}
        )


def test_duplicate_step_ids_are_rejected():
    with pytest.raises(ValidationError):
        WorkflowDefinition(
            name="x",
            slug="x",
            steps=[
                TransformStep(id="a", name="A"),
                TransformStep(id="a", name="A again"),
            ],
        )


def test_model_call_step_needs_a_prompt():
    with pytest.raises(ValidationError):
        ModelCallStep(id="a", name="A")


def test_workflow_round_trips_through_json():
    workflow = WorkflowDefinition(
        name="x",
        slug="x",
        steps=[ToolCallStep(id="a", name="A", tool_name="t", input_mapping={"q": "input.q"})],
    )
    restored = WorkflowDefinition.model_validate(workflow.model_dump(mode="json"))
    assert restored == workflow


def test_eval_constraints_accept_camel_case_names():
    constraints = EvalConstraints.model_validate(
        {"minFeeds": 5, "maxFeeds": 15, "freshnessDays": 30, "mustIncludeDomains": ["a.com"]}
    )
    assert constraints.min_count == 5
    assert constraints.max_count == 15
    assert constraints.freshness_window_days == 30
    assert constraints.required_domains == ["a.com"]
    assert EvalConstraints(min_score=70).min_score == 70


def test_run_terminal_states():
    run = WorkflowRun(workflow_id="w")
    assert run.status == RunStatus.PENDING
    assert not run.is_terminal
    assert run.model_copy(update={"status": RunStatus.CANCELLED}).is_terminal
