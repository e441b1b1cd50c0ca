"""Envelopes exchanged over the run queue.

Bodies are JSON with camelCase keys:

    {"kind": "workflow_run_request", "correlationId": "...", "runId": "...",
     "workflowId": "...", "triggerPath": "/t/abc", "input": {...}}
"""

import json
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from core.constants import RunStatus


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class RunError(_Envelope):
    message: str
    details: Any = None


class RunRequest(_Envelope):
    """Ask a worker to execute one run."""
    kind: Literal["workflow_run_request"] = "workflow_run_request"
    correlation_id: str
    run_id: str
    workflow_id: str
    trigger_path: str = ""
    input: Any = None


class RunResult(_Envelope):
    """Outcome of one run, delivered to whoever waits on its correlation id."""
    kind: Literal["workflow_run_result"] = "workflow_run_result"
    correlation_id: str
    run_id: str
    workflow_id: str
    status: RunStatus
    ctx_final: Optional[Any] = None
    workflow_execution_steps: Optional[list[dict[str, Any]]] = None
    error: Optional[RunError] = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_response(self) -> dict[str, Any]:
        """Body returned by the trigger endpoint."""
        return {
            "runId": self.run_id,
            "status": self.status.value,
            "error": self.error.model_dump(exclude_none=True) if self.error else None,
            "ctxFinal": self.ctx_final,
            "workflowExecutionSteps": self.workflow_execution_steps,
        }


def parse_run_request(body: str) -> Optional[RunRequest]:
    """Decode a queue body; anything that is not a run request yields None."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("kind") != "workflow_run_request":
        return None
    try:
        return RunRequest.model_validate(data)
    except PydanticValidationError:
        return None
