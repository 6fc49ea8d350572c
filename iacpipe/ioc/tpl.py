"""
Location templates.

Renders strings such as ``{path}/{target}.py`` from descriptor fields.
Placeholders may carry a default (``{stage:dev}``); a placeholder with no
value and no default is replaced by its own name.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"{(.*?)}")


def render(template: str, variables: Mapping[str, Any] | None = None) -> str:
    """
    Render a template string.

    Example:
        >>> render("{path}/{target}.py", {"path": "components", "target": "Docker"})
        'components/Docker.py'
        >>> render("{stage:dev}/{missing}", {})
        'dev/missing'
    """
    variables = variables or {}

    def _replace(match: re.Match[str]) -> str:
        name, _, default = match.group(1).partition(":")
        name = name.strip()
        value = variables.get(name)
        if value is not None:
            return str(value)
        if default:
            return default.strip()
        return name

    return _PLACEHOLDER.sub(_replace, template)
