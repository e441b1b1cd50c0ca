"""Workflow Execution Engine: step interpreter.

This is the core of Hookflow. It takes a workflow's step list, normalizes
and compiles it (see ``workflow.compiler``), then executes the operations
one by one against a JSON-like context:

- Filters that stop the run as ``skipped``
- Transforms (default value, template, pick)
- Outbound HTTP with retry/backoff
- ``if`` blocks and bounded ``while`` loops via a precomputed jump table
- Numeric counters (``create_or_update``)

Execution is a plain state machine: an instruction pointer over the
operation list, one handler per operation type, and an append-only trace
holding a snapshot of the context after every executed operation.

Example steps:
[
    {"action": "filter.compare", "key": "event", "condition": "eq", "value": "order.created"},
    {"action": "while.start", "key": "attempt", "condition": "lt", "value": 3},
    {"action": "create_or_update", "key": "attempt", "increment_by": 1, "default_value": 0},
    {"action": "while.end"},
    {"action": "send.http_request", "method": "POST", "url": "env:ORDERS_HOOK",
     "body": {"mode": "ctx"}, "retries": 2}
]
"""

import asyncio
import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
from urllib.parse import urlparse

import httpx
import structlog

from core.constants import MAX_WHILE_ITERATIONS, ActionType, RunStatus
from core.exceptions import UnresolvedSecretError, WorkflowValidationError
from workflow.compiler import CompiledWorkflow, compile_steps
from workflow.conditions import evaluate_condition, to_number_like
from workflow.dot_path import get_by_dot_path, pick_dot_paths, set_by_dot_path
from workflow.http_request import NO_BODY, HttpRequestSpec, execute_http_request
from workflow.operations import (
    OPERATION_MODELS,
    CreateOrUpdateOp,
    CtxBody,
    CustomBody,
    FilterCompareOp,
    IfEndOp,
    IfStartOp,
    OperationModel,
    SendHttpRequestOp,
    TransformDefaultValueOp,
    TransformPickOp,
    TransformReplaceTemplateOp,
    WhileEndOp,
    WhileStartOp,
)
from workflow.retry_strategies import Sleeper
from workflow.secrets import MappingSecretResolver, SecretResolver, resolve_url
from workflow.template import deep_template, render_template

logger = structlog.get_logger(__name__)

_SLACK_WEBHOOK_PATH = re.compile(r"^/services/[^/]+/[^/]+/[^/]+$")


# ─── Results ──────────────────────────────────────────────────

@dataclass
class TraceEntry:
    """One executed operation. ``output`` is the context right after it."""
    action: str
    details: dict[str, Any]
    output: dict[str, Any]
    passed: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action}
        if self.passed is not None:
            data["passed"] = self.passed
        data["details"] = self.details
        data["output"] = self.output
        return data


@dataclass
class EngineResult:
    """Terminal outcome of one run."""
    status: RunStatus
    ctx: dict[str, Any]
    trace: list[TraceEntry] = field(default_factory=list)
    error: Optional[dict[str, Any]] = None

    def trace_dicts(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.trace]


class _Halt(Exception):
    """Raised by a handler to end the run early."""

    def __init__(self, status: RunStatus, message: Optional[str] = None, details: Any = None):
        self.status = status
        self.error: Optional[dict[str, Any]] = None
        if message is not None:
            self.error = {"message": message}
            if details is not None:
                self.error["details"] = details
        super().__init__(message or status.value)


def snapshot(value: Any) -> Any:
    """Deep copy of JSON-like data recorded into the trace."""
    return copy.deepcopy(value)


@dataclass
class _RunState:
    """Mutable registers of a single run."""
    compiled: CompiledWorkflow
    ctx: dict[str, Any]
    pointer: int = 0
    trace: list[TraceEntry] = field(default_factory=list)
    # Iteration counters keyed by the while.start index
    while_iterations: dict[int, int] = field(default_factory=dict)

    def record(self, action: str, details: dict[str, Any], passed: Optional[bool] = None) -> None:
        self.trace.append(
            TraceEntry(action=action, details=snapshot(details), output=snapshot(self.ctx), passed=passed)
        )

    def finish(self, status: RunStatus, error: Optional[dict[str, Any]] = None) -> EngineResult:
        return EngineResult(status=status, ctx=self.ctx, trace=self.trace, error=error)


Handler = Callable[[Any, _RunState], Awaitable[int]]


def is_slack_webhook_url(url: str) -> bool:
    """Slack incoming webhooks get a longer default timeout."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return (
        parsed.scheme == "https"
        and parsed.hostname == "hooks.slack.com"
        and bool(_SLACK_WEBHOOK_PATH.match(parsed.path))
    )


def try_parse_json(text: str) -> Any:
    """Parse ``text`` when it looks like a JSON object or array."""
    trimmed = text.strip()
    if not (trimmed.startswith("{") or trimmed.startswith("[")):
        return None
    try:
        return json.loads(trimmed)
    except ValueError:
        return None


# ─── Workflow Engine ───────────────────────────────────────────

class WorkflowEngine:
    """Executes a workflow's operations against a context.

    One engine instance serves any number of concurrent runs; all per-run
    state lives in ``_RunState``.
    """

    def __init__(
        self,
        secrets: Optional[SecretResolver] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        default_timeout_ms: int = 2_000,
        slack_timeout_ms: int = 10_000,
        max_while_iterations: int = MAX_WHILE_ITERATIONS,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._secrets = secrets or SecretResolver()
        self._http_client = http_client
        self._default_timeout_ms = default_timeout_ms
        self._slack_timeout_ms = slack_timeout_ms
        self._max_while_iterations = max_while_iterations
        self._sleep = sleep
        self._handlers: dict[str, Handler] = {
            ActionType.FILTER_COMPARE.value: self._filter_compare,
            ActionType.TRANSFORM_DEFAULT_VALUE.value: self._transform_default_value,
            ActionType.TRANSFORM_REPLACE_TEMPLATE.value: self._transform_replace_template,
            ActionType.TRANSFORM_PICK.value: self._transform_pick,
            ActionType.SEND_HTTP_REQUEST.value: self._send_http_request,
            ActionType.IF_START.value: self._if_start,
            ActionType.IF_END.value: self._if_end,
            ActionType.WHILE_START.value: self._while_start,
            ActionType.WHILE_END.value: self._while_end,
            ActionType.CREATE_OR_UPDATE.value: self._create_or_update,
        }
        missing = {action.value for action in OPERATION_MODELS} - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for operations: {sorted(missing)}")

    async def execute(
        self,
        steps: Union[CompiledWorkflow, Iterable[Any]],
        initial_ctx: Optional[dict[str, Any]] = None,
    ) -> EngineResult:
        """Compile ``steps`` and run them from a copy of ``initial_ctx``.

        Validation problems produce a ``failed`` result with an empty trace;
        nothing executes in that case.
        """
        ctx = snapshot(initial_ctx or {})

        if isinstance(steps, CompiledWorkflow):
            compiled = steps
        else:
            try:
                compiled = compile_steps(steps)
            except WorkflowValidationError as e:
                logger.warning("Workflow rejected before execution", error=e.message)
                return EngineResult(
                    status=RunStatus.FAILED,
                    ctx=ctx,
                    error={"message": e.message, "details": {"issues": e.issues}},
                )

        state = _RunState(compiled=compiled, ctx=ctx)
        operations = compiled.operations

        while state.pointer < len(operations):
            op = operations[state.pointer]
            handler = self._handlers[op.action]
            try:
                state.pointer = await handler(op, state)
            except _Halt as halt:
                logger.info(
                    "Workflow run stopped",
                    status=halt.status.value,
                    action=op.action,
                    index=state.pointer,
                    error=halt.error["message"] if halt.error else None,
                )
                return state.finish(halt.status, halt.error)

        logger.info("Workflow run completed", steps_executed=len(state.trace))
        return state.finish(RunStatus.SUCCESS)

    # ─── Conditions ───────────────────────────────────────────

    def _check(self, op: Any, state: _RunState) -> tuple[bool, dict[str, Any]]:
        actual = get_by_dot_path(state.ctx, op.key)
        passed = evaluate_condition(actual, op.condition, op.value)
        details = {
            "key": op.key,
            "condition": op.condition.value,
            "expected": op.value,
            "actual": actual,
        }
        return passed, details

    async def _filter_compare(self, op: FilterCompareOp, state: _RunState) -> int:
        passed, details = self._check(op, state)
        state.record(op.action, details, passed=passed)
        if not passed:
            raise _Halt(RunStatus.SKIPPED)
        return state.pointer + 1

    # ─── Transforms ───────────────────────────────────────────

    async def _transform_default_value(self, op: TransformDefaultValueOp, state: _RunState) -> int:
        current = get_by_dot_path(state.ctx, op.key)
        if current is None or current == "":
            set_by_dot_path(state.ctx, op.key, snapshot(op.value))
        state.record(op.action, {"key": op.key})
        return state.pointer + 1

    async def _transform_replace_template(self, op: TransformReplaceTemplateOp, state: _RunState) -> int:
        set_by_dot_path(state.ctx, op.key, render_template(op.value, state.ctx))
        state.record(op.action, {"key": op.key})
        return state.pointer + 1

    async def _transform_pick(self, op: TransformPickOp, state: _RunState) -> int:
        state.ctx = pick_dot_paths(state.ctx, op.value)
        state.record(op.action, {"keys": list(op.value)})
        return state.pointer + 1

    # ─── HTTP ─────────────────────────────────────────────────

    def _fail_http(self, op: SendHttpRequestOp, state: _RunState, message: str) -> _Halt:
        state.record(op.action, {"error": message})
        return _Halt(RunStatus.FAILED, message)

    async def _send_http_request(self, op: SendHttpRequestOp, state: _RunState) -> int:
        headers = deep_template(op.headers, state.ctx) if op.headers else None

        declared_url = op.url.strip()
        if not declared_url:
            raise self._fail_http(op, state, "send.http_request requires a non-empty url")
        try:
            url = resolve_url(declared_url, self._secrets)
        except UnresolvedSecretError as e:
            raise self._fail_http(op, state, e.message)

        body: Any = NO_BODY
        if isinstance(op.body, CtxBody):
            body = snapshot(state.ctx)
        elif isinstance(op.body, CustomBody):
            body = deep_template(op.body.value, state.ctx)

        timeout_ms = op.timeout_ms or (
            self._slack_timeout_ms if is_slack_webhook_url(url) else self._default_timeout_ms
        )

        result = await execute_http_request(
            HttpRequestSpec(
                method=op.method.value,
                url=url,
                headers=headers,
                json_body=body,
                timeout_ms=timeout_ms,
                retries=op.retries,
            ),
            client=self._http_client,
            sleep=self._sleep,
        )

        parsed = try_parse_json(result.body_text)
        state.ctx["send_http_status"] = result.status
        state.ctx["send_http_ok"] = result.ok
        state.ctx["send_http_response"] = parsed if parsed is not None else result.body_text
        state.ctx["send_http_retries_used"] = result.retries_used

        # The declared url is recorded so resolved secrets stay out of the trace
        state.record(
            op.action,
            {
                "request": {
                    "method": op.method.value,
                    "url": declared_url,
                    "headers": headers,
                    "bodyMode": op.body.mode if op.body else None,
                },
                "response": result.to_dict(),
            },
        )

        if not result.ok:
            message = (
                "HTTP request failed (no response)"
                if result.status == 0
                else f"HTTP request failed with status {result.status}"
            )
            details = result.to_dict()
            details.pop("ok")
            raise _Halt(RunStatus.FAILED, message, details)

        return state.pointer + 1

    # ─── Blocks ───────────────────────────────────────────────

    async def _if_start(self, op: IfStartOp, state: _RunState) -> int:
        passed, details = self._check(op, state)
        state.record(op.action, details, passed=passed)
        if passed:
            return state.pointer + 1
        return state.compiled.blocks.start_to_end[state.pointer] + 1

    async def _if_end(self, op: IfEndOp, state: _RunState) -> int:
        state.record(op.action, {})
        return state.pointer + 1

    async def _while_start(self, op: WhileStartOp, state: _RunState) -> int:
        passed, details = self._check(op, state)
        details["iteration"] = state.while_iterations.get(state.pointer, 0)
        state.record(op.action, details, passed=passed)
        if passed:
            return state.pointer + 1
        state.while_iterations.pop(state.pointer, None)
        return state.compiled.blocks.start_to_end[state.pointer] + 1

    async def _while_end(self, op: WhileEndOp, state: _RunState) -> int:
        start = state.compiled.blocks.end_to_start[state.pointer]
        iteration = state.while_iterations.get(start, 0) + 1
        state.while_iterations[start] = iteration
        state.record(op.action, {"iteration": iteration})
        if iteration >= self._max_while_iterations:
            raise _Halt(
                RunStatus.FAILED,
                f"While loop exceeded max iterations ({self._max_while_iterations})",
            )
        return start

    # ─── Counters ─────────────────────────────────────────────

    async def _create_or_update(self, op: CreateOrUpdateOp, state: _RunState) -> int:
        increment = to_number_like(op.increment_by)
        default = to_number_like(op.default_value)
        if increment is None or default is None:
            message = "create_or_update requires numeric increment_by and default_value"
            state.record(op.action, {"key": op.key, "error": message})
            raise _Halt(RunStatus.FAILED, message)

        before = get_by_dot_path(state.ctx, op.key)
        if before is None:
            set_by_dot_path(state.ctx, op.key, default)
            state.record(op.action, {"key": op.key, "created": True, "default_value": default})
            return state.pointer + 1

        before_number = to_number_like(before)
        if before_number is None:
            message = f"create_or_update cannot increment non-numeric value at key '{op.key}'"
            state.record(op.action, {"key": op.key, "error": message})
            raise _Halt(RunStatus.FAILED, message)

        after = before_number + increment
        set_by_dot_path(state.ctx, op.key, after)
        state.record(
            op.action,
            {
                "key": op.key,
                "created": False,
                "before": before_number,
                "increment_by": increment,
                "after": after,
            },
        )
        return state.pointer + 1


# ─── Factory ───────────────────────────────────────────────────

def build_workflow_engine(settings, http_client: Optional[httpx.AsyncClient] = None) -> WorkflowEngine:
    """Engine configured from application settings."""
    return WorkflowEngine(
        secrets=MappingSecretResolver(settings.WORKFLOW_SECRETS),
        http_client=http_client,
        default_timeout_ms=settings.HTTP_STEP_DEFAULT_TIMEOUT_MS,
        slack_timeout_ms=settings.HTTP_STEP_SLACK_TIMEOUT_MS,
    )
