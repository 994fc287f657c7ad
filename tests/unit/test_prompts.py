from stepflow.prompts import format_system_prompt, format_user_prompt


def test_placeholders_are_substituted():
    assert (
        format_system_prompt("Find {{ topic }} feeds", {"topic": "economics"})
        == "Find economics feeds"
    )


def test_unknown_placeholders_are_left_untouched():
    assert format_user_prompt("Hello {{name}} {{other}}", {"name": "x"}) == "Hello x {{other}}"


def test_dotted_placeholders_resolve_nested_values():
    variables = {"steps": {"search": {"output": {"count": 3}}}}
    assert format_system_prompt("{{steps.search.output.count}} hits", variables) == "3 hits"


def test_user_prompt_json_encodes_structures():
    rendered = format_user_prompt("Data: {{items}}", {"items": [{"a": 1}]})
    assert rendered == 'Data: [\n  {\n    "a": 1\n  }\n]'


def test_system_prompt_stringifies_structures_and_none():
    assert format_system_prompt("{{items}}|{{none}}", {"items": [1, 2], "none": None}) == "[1, 2]|"


def test_empty_template_gives_empty_prompt():
    assert format_system_prompt(None, {}) == ""
    assert format_user_prompt("", {"x": 1}) == ""
