"""Parsing and checking of structured model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict

from ..errors import InvalidOutput, SchemaValidationError

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")
_OBJECT = re.compile(r"\{[\s\S]*\}")

_JSON_TYPES = {
    "object": dict,
    "array": list,
    "string": str,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
}


def parse_json_output(content: str) -> Any:
    """Parse model text as JSON, tolerating code fences and surrounding prose."""
    text = _FENCE_END.sub("", _FENCE_START.sub("", content.strip()))
    if not text.startswith(("{", "[")):
        match = _OBJECT.search(text)
        if match:
            text = match.group(0)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidOutput(f"Failed to parse JSON output: {exc}", raw_output=content)


def validate_output(output: Any, schema: Dict[str, Any]) -> Any:
    """Check the top-level type and required keys declared by ``schema``."""
    expected = schema.get("type")
    python_type = _JSON_TYPES.get(expected) if isinstance(expected, str) else None
    if python_type is not None and (
        not isinstance(output, python_type)
        or (expected in ("number", "integer") and isinstance(output, bool))
    ):
        raise SchemaValidationError(
            f"Model output has type {type(output).__name__}, expected {expected}"
        )
    required = schema.get("required") or []
    if required and isinstance(output, dict):
        missing = [key for key in required if key not in output]
        if missing:
            raise SchemaValidationError(
                f"Model output is missing required fields: {', '.join(missing)}"
            )
    return output
