"""Workflow trigger endpoint.

``POST /t/{token}`` starts a run of the workflow whose trigger path is
``/t/{token}`` with the JSON body as input and answers synchronously with
the run outcome. With a run queue the request goes through the worker and
the endpoint waits on the correlation id; without one (and no queue
configured) the run executes inline.
"""

import json
from typing import Any
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.dependencies import get_app_settings, get_db, get_engine, get_run_queue, get_run_waiter, get_session_factory
from core.constants import TRIGGER_PATH_PREFIX, RunStatus
from core.exceptions import (
    ForbiddenError,
    HookflowException,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from services.run_service import RunService
from worker.messages import RunRequest
from worker.run_workflow import execute_workflow_run

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Triggers"])


async def _read_input(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


@router.post("/t/{token}")
async def trigger_workflow(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Run the workflow bound to this trigger and return its outcome."""
    trigger_path = f"{TRIGGER_PATH_PREFIX}{token}"
    service = RunService(db)

    workflow = await service.get_workflow_by_trigger_path(trigger_path)
    if workflow is None:
        raise NotFoundError("Workflow trigger not found")
    if not workflow.enabled:
        raise ForbiddenError("Workflow is disabled")

    queue = get_run_queue(request)
    if queue is None and settings.queue_configured:
        raise ServiceUnavailableError("Queue is not configured")

    input = await _read_input(request)
    run = await service.create_run(workflow.id, input)
    # The run must be visible to the worker's own session
    await db.commit()

    run_request = RunRequest(
        correlation_id=str(uuid4()),
        run_id=run.id,
        workflow_id=workflow.id,
        trigger_path=trigger_path,
        input=input,
    )
    log = logger.bind(run_id=run.id, workflow_id=workflow.id, correlation_id=run_request.correlation_id)

    if queue is None:
        log.info("Executing run inline")
        result = await execute_workflow_run(run_request, get_session_factory(request), get_engine(request))
        return result.to_response()

    waiter = get_run_waiter(request)
    pending = waiter.register(run_request.correlation_id, settings.TRIGGER_SYNC_TIMEOUT_MS)
    try:
        await queue.send(run_request.to_json())
    except Exception as e:
        waiter.cancel(run_request.correlation_id)
        log.error("Failed to enqueue run request", error=str(e))
        await service.complete_run(
            run.id,
            RunStatus.FAILED,
            ctx_final=None,
            execution_trace=[],
            error={"message": "Failed to enqueue workflow run", "details": str(e)},
        )
        await db.commit()
        raise ServiceUnavailableError("Failed to enqueue workflow run")
    log.info("Run request enqueued")

    try:
        result = await pending
    except Exception as e:
        message = e.message if isinstance(e, HookflowException) else (str(e) or "Unknown error")
        log.warning("Run result not delivered", error=message)
        return {"runId": run.id, "status": RunStatus.FAILED.value, "error": {"message": message}}
    finally:
        waiter.cancel(run_request.correlation_id)

    return result.to_response()
