"""Shared helper to execute one workflow run end to end.

Both the trigger endpoint (inline mode) and the queue worker run
workflows through this module. For a ``RunRequest`` it:

1. Loads the workflow (fresh session per phase, safe for the worker task)
2. Expands operation templates and normalizes the stored steps
3. Runs the ``WorkflowEngine``
4. Persists the terminal status, final context, trace and error
5. Returns the ``RunResult`` envelope

Usage from the worker::

    executor = make_run_executor(session_factory, engine, waiter)
    worker = RunWorker(queue, executor)
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from core.constants import RunStatus
from core.exceptions import WorkflowValidationError
from services.run_service import RunService
from worker.messages import RunError, RunRequest, RunResult
from worker.run_waiter import RunWaiter
from worker.run_worker import RunExecutor
from workflow.engine import EngineResult, WorkflowEngine
from workflow.normalize import normalize_steps
from workflow.operation_templates import expand_operation_templates, referenced_operations

logger = structlog.get_logger(__name__)


def input_to_ctx(input: Any) -> dict[str, Any]:
    """Object input becomes the context; anything else is wrapped."""
    if isinstance(input, dict):
        return dict(input)
    return {"payload": input}


def build_initial_ctx(request: RunRequest) -> dict[str, Any]:
    ctx = input_to_ctx(request.input)
    ctx["workflow_id"] = request.workflow_id
    ctx["run_id"] = request.run_id
    return ctx


async def _finish(
    session_factory,
    request: RunRequest,
    status: RunStatus,
    error: Optional[dict[str, Any]] = None,
    engine_result: Optional[EngineResult] = None,
) -> RunResult:
    finished_at = datetime.now(timezone.utc)
    ctx_final = engine_result.ctx if engine_result else None
    steps = engine_result.trace_dicts() if engine_result else None

    async with session_factory() as session:
        updated = await RunService(session).complete_run(
            request.run_id,
            status,
            ctx_final=ctx_final,
            execution_trace=steps,
            error=error,
            finished_at=finished_at,
        )
        await session.commit()
    if not updated:
        logger.warning("Run was not in running state, result not persisted", status=status.value)

    return RunResult(
        correlation_id=request.correlation_id,
        run_id=request.run_id,
        workflow_id=request.workflow_id,
        status=status,
        ctx_final=ctx_final,
        workflow_execution_steps=steps,
        error=RunError(**error) if error else None,
        finished_at=finished_at,
    )


async def execute_workflow_run(
    request: RunRequest,
    session_factory,
    engine: WorkflowEngine,
) -> RunResult:
    """Execute ``request`` and persist its outcome.

    Args:
        request: Run request as enqueued by the trigger endpoint
        session_factory: Async session factory for the run tables
        engine: Interpreter to run the steps with

    Returns:
        The result envelope; run-level failures are reported in it, never raised
    """
    with structlog.contextvars.bound_contextvars(
        run_id=request.run_id,
        workflow_id=request.workflow_id,
        correlation_id=request.correlation_id,
    ):
        invalid: Optional[WorkflowValidationError] = None
        async with session_factory() as session:
            service = RunService(session)
            workflow = await service.get_workflow(request.workflow_id)
            if workflow is not None:
                try:
                    names = referenced_operations(workflow.steps)
                    templates = await service.load_operation_templates(names, workflow.created_by_id)
                    operations = normalize_steps(expand_operation_templates(workflow.steps, templates))
                except WorkflowValidationError as e:
                    invalid = e

        if workflow is None:
            logger.warning("Run requested for unknown workflow")
            return await _finish(session_factory, request, RunStatus.FAILED, {"message": "Workflow not found"})

        if invalid is not None:
            logger.warning("Stored workflow steps are invalid", error=invalid.message)
            return await _finish(
                session_factory,
                request,
                RunStatus.FAILED,
                {
                    "message": "Invalid workflow steps in database",
                    "details": {"message": invalid.message, "issues": invalid.issues},
                },
            )

        logger.info("Workflow run started", operations=len(operations))
        try:
            result = await engine.execute(operations, build_initial_ctx(request))
        except Exception as e:
            logger.exception("Workflow engine raised")
            return await _finish(
                session_factory,
                request,
                RunStatus.FAILED,
                {"message": "Workflow execution threw an exception", "details": str(e)},
            )

        logger.info("Workflow run finished", status=result.status.value, steps=len(result.trace))
        return await _finish(
            session_factory,
            request,
            result.status,
            result.error if result.status == RunStatus.FAILED else None,
            result,
        )


def make_run_executor(
    session_factory,
    engine: WorkflowEngine,
    waiter: Optional[RunWaiter] = None,
) -> RunExecutor:
    """Worker callback: execute the run, then hand the result to the waiter."""

    async def executor(request: RunRequest) -> RunResult:
        try:
            result = await execute_workflow_run(request, session_factory, engine)
        except Exception as e:
            if waiter is not None:
                waiter.reject(request.correlation_id, e)
            raise
        if waiter is not None:
            waiter.resolve(request.correlation_id, result)
        return result

    return executor
