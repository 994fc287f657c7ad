"""Prompt template formatting helpers."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from .context import MISSING, resolve_path

PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def _format(template: str, variables: Mapping[str, Any], *, structured: bool) -> str:
    def _replace(match: re.Match) -> str:
        value = resolve_path(match.group(1), variables)
        if value is MISSING:
            return match.group(0)
        if structured and isinstance(value, (dict, list)):
            return json.dumps(value, indent=2, default=str)
        if value is None:
            return ""
        return str(value)

    return PLACEHOLDER.sub(_replace, template)


def format_system_prompt(template: str | None, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` / ``{{dotted.path}}`` placeholders as plain text.

    Placeholders that do not resolve are left in place.
    """
    if not template:
        return ""
    return _format(template, variables, structured=False)


def format_user_prompt(template: str | None, variables: Mapping[str, Any]) -> str:
    """Like :func:`format_system_prompt` but lists and dicts are JSON encoded."""
    if not template:
        return ""
    return _format(template, variables, structured=True)
