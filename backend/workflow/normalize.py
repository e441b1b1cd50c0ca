"""Normalize stored step declarations into canonical operations.

Workflows saved over time use several shapes:

- flat operations: ``{"action": "filter.compare", "key": ..., ...}``
- flat operations tagged by ``type`` instead of ``action``, including the
  ``fetch.http_request`` alias of ``send.http_request``
- grouped legacy steps: ``{"type": "filter", "conditions": [...]}``,
  ``{"type": "transform", "ops": [...]}`` and ``{"type": "http_request", ...}``

All of them map onto the closed ``Operation`` union. Any step that cannot
be mapped is reported; a definition with issues is rejected as a whole.
"""

from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from core.constants import FETCH_HTTP_REQUEST_ALIAS, ActionType, HttpMethod, StepType
from core.exceptions import WorkflowValidationError
from workflow.operations import OperationModel, operation_adapter

_ACTION_NAMES = {action.value for action in ActionType}


def _format_errors(prefix: str, exc: PydanticValidationError) -> list[str]:
    issues = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        where = f"{prefix}.{loc}" if loc else prefix
        issues.append(f"{where}: {error['msg']}")
    return issues


def _legacy_filter(step: dict) -> list[dict]:
    conditions = step.get("ops")
    if not isinstance(conditions, list):
        conditions = step.get("conditions")
    if not isinstance(conditions, list) or not conditions:
        raise ValueError("filter step requires a non-empty 'ops' or 'conditions' list")
    declared = []
    for condition in conditions:
        if not isinstance(condition, dict):
            raise ValueError("filter conditions must be objects")
        declared.append({
            "action": ActionType.FILTER_COMPARE.value,
            "key": str(condition.get("path") or ""),
            "condition": str(condition.get("op") or ""),
            "value": condition.get("value"),
        })
    return declared


def _legacy_transform(step: dict) -> list[dict]:
    ops = step.get("ops")
    if not isinstance(ops, list) or not ops:
        raise ValueError("transform step requires a non-empty 'ops' list")
    declared = []
    for op in ops:
        if isinstance(op, str):
            raise ValueError(f"operation reference {op!r} was not expanded")
        if not isinstance(op, dict):
            raise ValueError("transform ops must be objects")
        kind = op.get("op")
        if kind == "default":
            declared.append({
                "action": ActionType.TRANSFORM_DEFAULT_VALUE.value,
                "key": str(op.get("path") or ""),
                "value": op.get("value"),
            })
        elif kind == "template":
            declared.append({
                "action": ActionType.TRANSFORM_REPLACE_TEMPLATE.value,
                "key": str(op.get("to") or ""),
                "value": str(op.get("template") or ""),
            })
        elif kind == "pick":
            paths = op.get("paths")
            declared.append({
                "action": ActionType.TRANSFORM_PICK.value,
                "value": [str(p) for p in paths] if isinstance(paths, list) else [],
            })
        else:
            raise ValueError(f"unknown transform op {kind!r}")
    return declared


def _legacy_http_request(step: dict) -> list[dict]:
    declared = {key: value for key, value in step.items() if key != "type"}
    declared["action"] = ActionType.SEND_HTTP_REQUEST.value
    declared.setdefault("method", HttpMethod.POST.value)
    if not isinstance(declared.get("headers"), dict):
        declared.pop("headers", None)
    return [declared]


_LEGACY_EXPANDERS = {
    StepType.FILTER.value: _legacy_filter,
    StepType.TRANSFORM.value: _legacy_transform,
    StepType.HTTP_REQUEST.value: _legacy_http_request,
}


def _declared_operations(step: Any) -> list[dict]:
    """Turn one raw step into zero or more flat operation dicts."""
    if not isinstance(step, dict):
        raise ValueError("step must be an object")

    action = step.get("action")
    if isinstance(action, str):
        return [step]

    step_type = step.get("type")
    if not isinstance(step_type, str):
        raise ValueError("step must declare an 'action' or a 'type'")

    if step_type == FETCH_HTTP_REQUEST_ALIAS:
        step_type = ActionType.SEND_HTTP_REQUEST.value
    if step_type in _ACTION_NAMES:
        declared = {key: value for key, value in step.items() if key != "type"}
        declared["action"] = step_type
        return [declared]

    expander = _LEGACY_EXPANDERS.get(step_type)
    if expander is None:
        raise ValueError(f"unknown step type {step_type!r}")
    return expander(step)


def normalize_steps(steps: Iterable[Any]) -> list[OperationModel]:
    """Map raw step declarations onto canonical operations.

    Raises:
        WorkflowValidationError: listing every step that could not be mapped
    """
    if not isinstance(steps, (list, tuple)):
        raise WorkflowValidationError("Invalid workflow: steps must be a list")

    operations: list[OperationModel] = []
    issues: list[str] = []

    for index, step in enumerate(steps):
        if isinstance(step, OperationModel):
            operations.append(step)
            continue
        prefix = f"steps[{index}]"
        try:
            declared = _declared_operations(step)
        except ValueError as e:
            issues.append(f"{prefix}: {e}")
            continue

        for item in declared:
            try:
                operations.append(operation_adapter.validate_python(item))
            except PydanticValidationError as e:
                issues.extend(_format_errors(prefix, e))

    if issues:
        raise WorkflowValidationError(f"Invalid workflow steps: {issues[0]}", issues)
    return operations
