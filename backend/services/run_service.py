"""Run service: workflow lookup, run lifecycle and operation templates."""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import RunStatus, TemplateVisibility
from db.models.operation_template import OperationTemplateModel
from db.models.workflow import Workflow
from db.models.workflow_run import WorkflowRun
from services.base import BaseService
from workflow.operation_templates import OperationTemplate


class RunService(BaseService[WorkflowRun]):
    """Persistence used by the trigger endpoint and the run orchestrator."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowRun, db)

    # ─── Workflows ─────────────────────────────────────────

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        result = await self.db.execute(select(Workflow).where(Workflow.id == workflow_id))
        return result.scalar_one_or_none()

    async def get_workflow_by_trigger_path(self, trigger_path: str) -> Optional[Workflow]:
        result = await self.db.execute(
            select(Workflow).where(Workflow.trigger_path == trigger_path)
        )
        return result.scalar_one_or_none()

    # ─── Runs ──────────────────────────────────────────────

    async def create_run(self, workflow_id: str, input: Any) -> WorkflowRun:
        """Create a run in ``running`` state."""
        return await self.create({
            "workflow_id": workflow_id,
            "status": RunStatus.RUNNING.value,
            "input": input,
            "started_at": datetime.now(timezone.utc),
        })

    async def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        return await self.get_by_id(run_id)

    async def complete_run(
        self,
        run_id: str,
        status: RunStatus,
        ctx_final: Any = None,
        execution_trace: Optional[list] = None,
        error: Optional[dict] = None,
        finished_at: Optional[datetime] = None,
    ) -> bool:
        """Move a running run to its terminal state.

        Only a run still in ``running`` is updated, so a run settles exactly
        once. Returns False when the run is missing or already terminal.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal run status")
        result = await self.db.execute(
            update(WorkflowRun)
            .where(
                WorkflowRun.id == run_id,
                WorkflowRun.status == RunStatus.RUNNING.value,
            )
            .values(
                status=status.value,
                ctx_final=ctx_final,
                execution_trace=execution_trace,
                error=error,
                finished_at=finished_at or datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ─── Operation templates ───────────────────────────────

    async def load_operation_templates(
        self,
        names: Iterable[str],
        owner_id: Optional[str],
    ) -> dict[str, OperationTemplate]:
        """Templates among ``names`` visible to ``owner_id``, keyed by name."""
        names = list(names)
        if not names:
            return {}

        visible = OperationTemplateModel.visibility == TemplateVisibility.PUBLIC.value
        if owner_id:
            visible = or_(visible, OperationTemplateModel.created_by_id == owner_id)

        result = await self.db.execute(
            select(OperationTemplateModel).where(OperationTemplateModel.op.in_(names), visible)
        )
        return {
            row.op: OperationTemplate(
                op=row.op,
                callback_type=row.callback_type,
                attributes=list(row.attributes or []),
            )
            for row in result.scalars().all()
        }
