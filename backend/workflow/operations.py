"""Canonical operation models.

Every accepted step shape is normalized into exactly one of these
models (see ``workflow.normalize``). The union is closed and
discriminated on ``action``; the interpreter registers one handler per
member and refuses to start if any is missing.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

from core.constants import ActionType, CompareOp, HttpMethod


def _check_dot_path(path: str) -> str:
    if path.startswith(".") or path.endswith("."):
        raise ValueError("Invalid dot-path")
    return path


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


DotPath = Annotated[str, Field(min_length=1), AfterValidator(_check_dot_path)]


class OperationModel(BaseModel):
    """Base for all canonical operations."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class _ConditionOperation(OperationModel):
    key: DotPath
    condition: CompareOp
    value: Any = None


class FilterCompareOp(_ConditionOperation):
    """Stop the run as ``skipped`` unless the comparison holds."""

    action: Literal["filter.compare"] = "filter.compare"


class TransformDefaultValueOp(OperationModel):
    """Fill ``key`` with ``value`` when it is missing or an empty string."""

    action: Literal["transform.default_value"] = "transform.default_value"
    key: DotPath
    value: Any = None


class TransformReplaceTemplateOp(OperationModel):
    """Render ``value`` as a template and write it to ``key``."""

    action: Literal["transform.replace_template"] = "transform.replace_template"
    key: DotPath
    value: str


class TransformPickOp(OperationModel):
    """Replace the whole context with only the listed paths."""

    action: Literal["transform.pick"] = "transform.pick"
    value: list[DotPath] = Field(min_length=1)


class CtxBody(BaseModel):
    """Send the whole current context as the JSON body."""

    mode: Literal["ctx"]


class CustomBody(BaseModel):
    """Send ``value`` (templated) as the JSON body."""

    mode: Literal["custom"]
    value: Any = None


HttpBody = Annotated[Union[CtxBody, CustomBody], Field(discriminator="mode")]


class SendHttpRequestOp(OperationModel):
    """Outbound HTTP call whose outcome is written back into the context."""

    action: Literal["send.http_request"] = "send.http_request"
    method: Annotated[HttpMethod, BeforeValidator(_upper)]
    url: str = ""
    headers: Optional[dict[str, str]] = None
    body: Optional[HttpBody] = None
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs", gt=0, le=30_000)
    retries: int = Field(default=0, ge=0, le=10)


class IfStartOp(_ConditionOperation):
    """Enter the block when the comparison holds, else jump past ``if.end``."""

    action: Literal["if.start"] = "if.start"


class IfEndOp(OperationModel):
    action: Literal["if.end"] = "if.end"


class WhileStartOp(_ConditionOperation):
    """Loop head; re-evaluated against the current context on every visit."""

    action: Literal["while.start"] = "while.start"


class WhileEndOp(OperationModel):
    action: Literal["while.end"] = "while.end"


class CreateOrUpdateOp(OperationModel):
    """Initialize a numeric counter or add ``increment_by`` to it.

    Operands are checked when the operation runs, so a non-numeric value
    fails that run rather than the whole workflow definition.
    """

    action: Literal["create_or_update"] = "create_or_update"
    key: DotPath
    increment_by: Any = None
    default_value: Any = None


Operation = Annotated[
    Union[
        FilterCompareOp,
        TransformDefaultValueOp,
        TransformReplaceTemplateOp,
        TransformPickOp,
        SendHttpRequestOp,
        IfStartOp,
        IfEndOp,
        WhileStartOp,
        WhileEndOp,
        CreateOrUpdateOp,
    ],
    Field(discriminator="action"),
]

operation_adapter: TypeAdapter = TypeAdapter(Operation)

OPERATION_MODELS: dict[ActionType, type[OperationModel]] = {
    ActionType.FILTER_COMPARE: FilterCompareOp,
    ActionType.TRANSFORM_DEFAULT_VALUE: TransformDefaultValueOp,
    ActionType.TRANSFORM_REPLACE_TEMPLATE: TransformReplaceTemplateOp,
    ActionType.TRANSFORM_PICK: TransformPickOp,
    ActionType.SEND_HTTP_REQUEST: SendHttpRequestOp,
    ActionType.IF_START: IfStartOp,
    ActionType.IF_END: IfEndOp,
    ActionType.WHILE_START: WhileStartOp,
    ActionType.WHILE_END: WhileEndOp,
    ActionType.CREATE_OR_UPDATE: CreateOrUpdateOp,
}

BLOCK_STARTS = {ActionType.IF_START.value: "if", ActionType.WHILE_START.value: "while"}
BLOCK_ENDS = {ActionType.IF_END.value: "if", ActionType.WHILE_END.value: "while"}
