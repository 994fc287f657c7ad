import pytest

from stepflow.context import (
    MISSING,
    ExecutionContext,
    StepResult,
    resolve_inputs,
    resolve_path,
)
from stepflow.contracts import StepRun, StepStatus


def _context() -> ExecutionContext:
    context = ExecutionContext({"interests": "ai", "limit": 5})
    context.record(
        "search",
        StepResult(
            input={"query": "ai"},
            output={"results": [{"url": "https://a.example"}, {"url": "https://b.example"}]},
        ),
    )
    return context


def test_resolve_inputs_reads_input_and_step_output():
    resolved = resolve_inputs(
        {
            "topic": "input.interests",
            "results": "steps.search.output.results",
            "query": "steps.search.input.query",
        },
        _context(),
    )
    assert resolved == {
        "topic": "ai",
        "results": [{"url": "https://a.example"}, {"url": "https://b.example"}],
        "query": "ai",
    }


def test_resolve_inputs_walks_list_indices():
    resolved = resolve_inputs({"first": "steps.search.output.results.1.url"}, _context())
    assert resolved == {"first": "https://b.example"}


def test_unresolvable_paths_are_omitted_without_raising():
    resolved = resolve_inputs(
        {
            "a": "steps.unknown.output",
            "b": "input.missing",
            "c": "steps.search.output.results.9",
            "d": "input.interests.deeper",
            "e": "",
            "ok": "input.limit",
        },
        _context(),
    )
    assert resolved == {"ok": 5}


def test_empty_mapping_resolves_to_empty_dict():
    assert resolve_inputs({}, _context()) == {}
    assert resolve_inputs(None, _context()) == {}


def test_resolve_path_distinguishes_missing_from_none():
    root = {"input": {"value": None}}
    assert resolve_path("input.value", root) is None
    assert resolve_path("input.other", root) is MISSING
    assert not MISSING


def test_context_is_append_only():
    context = _context()
    with pytest.raises(ValueError):
        context.record("search", StepResult(output={}))
    assert context.get("search").input == {"query": "ai"}


def test_context_rebuilt_from_step_runs_matches_live_context():
    step_runs = [
        StepRun(
            run_id="r1",
            step_id="a",
            name="A",
            type="transform",
            input={"x": 1},
            output={"y": 2},
            status=StepStatus.COMPLETED,
        ),
        StepRun(run_id="r1", step_id="b", name="B", type="transform", output=None),
    ]
    context = ExecutionContext.from_step_runs({"q": "z"}, step_runs)
    mapping = context.as_mapping()
    assert mapping["input"] == {"q": "z"}
    assert mapping["steps"]["a"]["output"] == {"y": 2}
    assert mapping["steps"]["b"]["output"] is None

    live = ExecutionContext({"q": "z"})
    live.record("a", StepResult(input={"x": 1}, output={"y": 2}))
    live.record("b", StepResult(output=None, status=StepStatus.PENDING))
    assert live.as_mapping() == mapping
    assert resolve_path("steps.b.output", live.as_mapping()) is resolve_path(
        "steps.b.output", mapping
    )
