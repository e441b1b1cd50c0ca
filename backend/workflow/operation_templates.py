"""Expansion of reusable operation references inside legacy transform steps.

A transform step may list ``"{{ op.name }}"`` strings among its ops. Each
name refers to a stored operation template that is turned back into a
plain transform op before the steps are compiled:

    {"type": "transform", "ops": ["{{ add_defaults }}", {"op": "pick", "paths": ["a"]}]}
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from core.constants import StepType
from core.exceptions import WorkflowValidationError

OPERATION_REF_PATTERN = re.compile(r"^{{\s*([a-zA-Z][a-zA-Z0-9_.-]{2,80})\s*}}$")


@dataclass
class OperationTemplate:
    """A stored operation, decoupled from its database row."""
    op: str
    callback_type: str
    attributes: list[dict[str, Any]] = field(default_factory=list)

    def attribute(self, name: str) -> Optional[str]:
        for item in self.attributes:
            if not isinstance(item, dict):
                continue
            if item.get("name") == name and isinstance(item.get("value"), str):
                return item["value"]
        return None


def parse_operation_ref(value: str) -> str:
    match = OPERATION_REF_PATTERN.match(value)
    if not match:
        raise WorkflowValidationError(f"Invalid operation reference: {value}")
    return match.group(1)


def _is_transform_step(step: Any) -> bool:
    return (
        isinstance(step, dict)
        and step.get("type") == StepType.TRANSFORM.value
        and isinstance(step.get("ops"), list)
    )


def referenced_operations(steps: Any) -> list[str]:
    """Names referenced by transform steps, in first-seen order.

    Raises:
        WorkflowValidationError: a string op is not a well-formed reference
    """
    if not isinstance(steps, list):
        return []
    names: list[str] = []
    for step in steps:
        if not _is_transform_step(step):
            continue
        for op in step["ops"]:
            if isinstance(op, str):
                name = parse_operation_ref(op)
                if name not in names:
                    names.append(name)
    return names


def _try_parse_json(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def expand_one(template: OperationTemplate) -> dict[str, Any]:
    """Turn a template into the transform op it stands for."""
    if template.callback_type == "template":
        to = template.attribute("to")
        body = template.attribute("template")
        if not to or not body:
            raise WorkflowValidationError(
                f"Operation {template.op} (template) requires attributes: to, template"
            )
        return {"op": "template", "to": to, "template": body}

    if template.callback_type == "default":
        path = template.attribute("path")
        raw = template.attribute("value")
        if not path or raw is None:
            raise WorkflowValidationError(
                f"Operation {template.op} (default) requires attributes: path, value"
            )
        return {"op": "default", "path": path, "value": _try_parse_json(raw)}

    if template.callback_type == "pick":
        raw = template.attribute("paths")
        if not raw:
            raise WorkflowValidationError(f"Operation {template.op} (pick) requires attribute: paths")
        paths = [part.strip() for part in raw.split(",") if part.strip()]
        if not paths:
            raise WorkflowValidationError(f"Operation {template.op} (pick) requires at least one path")
        return {"op": "pick", "paths": paths}

    raise WorkflowValidationError(
        f"Unsupported callbackType for operation {template.op}: {template.callback_type}"
    )


def expand_operation_templates(steps: Any, templates: Mapping[str, OperationTemplate]) -> Any:
    """Replace every operation reference with its expanded op.

    Args:
        steps: Raw step declarations as stored on the workflow
        templates: Visible templates keyed by name

    Returns:
        A new step list; ``steps`` itself is returned when nothing is referenced

    Raises:
        WorkflowValidationError: unknown or invisible template, malformed
            reference, or a template missing required attributes
    """
    names = referenced_operations(steps)
    if not names:
        return steps

    missing = [name for name in names if name not in templates]
    if missing:
        raise WorkflowValidationError(
            f"Operation template not found or not visible: {', '.join(missing)}"
        )

    expanded = []
    for step in steps:
        if not _is_transform_step(step):
            expanded.append(step)
            continue
        ops = [
            expand_one(templates[parse_operation_ref(op)]) if isinstance(op, str) else op
            for op in step["ops"]
        ]
        expanded.append({**step, "ops": ops})
    return expanded
