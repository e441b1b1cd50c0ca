"""``{{ dot.path }}`` string templating against a run context."""

import json
import re
from typing import Any

from workflow.dot_path import get_by_dot_path

PLACEHOLDER_PATTERN = re.compile(r"{{\s*([^}]+?)\s*}}")


def stringify(value: Any) -> str:
    """Render a resolved value the way it appears inside a template.

    Missing values become an empty string, booleans use their JSON
    spelling, containers are serialized compactly.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        # Whole numbers print without a fraction below the exponent threshold
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return json.dumps(value)
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return ""


def render_template(template: str, ctx: Any) -> str:
    """Replace every placeholder in ``template`` with its resolved value."""
    return PLACEHOLDER_PATTERN.sub(
        lambda match: stringify(get_by_dot_path(ctx, match.group(1))),
        template,
    )


def deep_template(value: Any, ctx: Any) -> Any:
    """Render templates in every string nested inside ``value``.

    Non-string scalars pass through untouched; a new structure is returned.
    """
    if isinstance(value, str):
        return render_template(value, ctx)
    if isinstance(value, list):
        return [deep_template(item, ctx) for item in value]
    if isinstance(value, dict):
        return {key: deep_template(item, ctx) for key, item in value.items()}
    return value
